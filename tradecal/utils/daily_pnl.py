import calendar
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

TzLike = Union[str, ZoneInfo, timezone]

# seconds fraction of an ISO time; PostgREST trims trailing zeros (".5", ".12")
_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")

WIN_OUTCOMES = {"win", "profit", "won"}
LOSS_OUTCOMES = {"loss", "lost"}


class InvalidTimestamp(ValueError):
    """
    A trade's timestamp could not be turned into a calendar date.
    Raised for the whole aggregation call, never per-trade.
    """

    def __init__(self, value: Any, trade_id: Any = None):
        self.value = value
        self.trade_id = trade_id
        where = f" (trade {trade_id})" if trade_id is not None else ""
        super().__init__(f"invalid_timestamp{where}: {value!r}")


class HeatmapTier(str, Enum):
    EMPTY = "empty"
    PROFIT_1 = "profit-1"
    PROFIT_2 = "profit-2"
    PROFIT_3 = "profit-3"
    PROFIT_4 = "profit-4"
    LOSS_1 = "loss-1"
    LOSS_2 = "loss-2"
    LOSS_3 = "loss-3"
    LOSS_4 = "loss-4"


# (magnitude, tier) from the largest threshold down; the boundary value
# belongs to the higher tier.
PROFIT_THRESHOLDS: Tuple[Tuple[float, HeatmapTier], ...] = (
    (5000.0, HeatmapTier.PROFIT_4),
    (2000.0, HeatmapTier.PROFIT_3),
    (500.0, HeatmapTier.PROFIT_2),
)
LOSS_THRESHOLDS: Tuple[Tuple[float, HeatmapTier], ...] = (
    (5000.0, HeatmapTier.LOSS_4),
    (2000.0, HeatmapTier.LOSS_3),
    (500.0, HeatmapTier.LOSS_2),
)

TIER_COLORS: Dict[HeatmapTier, str] = {
    HeatmapTier.EMPTY: "#27272a",
    HeatmapTier.PROFIT_1: "#10b98133",
    HeatmapTier.PROFIT_2: "#10b98166",
    HeatmapTier.PROFIT_3: "#10b98199",
    HeatmapTier.PROFIT_4: "#10b981",
    HeatmapTier.LOSS_1: "#ef444433",
    HeatmapTier.LOSS_2: "#ef444466",
    HeatmapTier.LOSS_3: "#ef444499",
    HeatmapTier.LOSS_4: "#ef4444",
}


def classify_pnl(value: float) -> HeatmapTier:
    """
    Map a day's net P&L to its heatmap tier.

      0                  -> empty
      (0, 500)           -> profit-1      (-500, 0)        -> loss-1
      [500, 2000)        -> profit-2      (-2000, -500]    -> loss-2
      [2000, 5000)       -> profit-3      (-5000, -2000]   -> loss-3
      >= 5000            -> profit-4      <= -5000         -> loss-4

    NaN is treated as no data (empty); +/-inf fall into the extreme tiers.
    """
    if math.isnan(value) or value == 0:
        return HeatmapTier.EMPTY

    if value > 0:
        for threshold, tier in PROFIT_THRESHOLDS:
            if value >= threshold:
                return tier
        return HeatmapTier.PROFIT_1

    for threshold, tier in LOSS_THRESHOLDS:
        if value <= -threshold:
            return tier
    return HeatmapTier.LOSS_1


def tier_color(tier: Union[HeatmapTier, str]) -> str:
    """Heatmap fill colour for a tier. Unknown labels raise ValueError."""
    try:
        return TIER_COLORS[HeatmapTier(tier)]
    except (ValueError, KeyError):
        raise ValueError(f"unknown heatmap tier: {tier!r}")


def tier_legend() -> List[Dict[str, Any]]:
    """All nine tiers with their P&L range and colour, legend order (loss -> profit)."""
    bounds = {
        HeatmapTier.LOSS_4: (None, -5000.0),
        HeatmapTier.LOSS_3: (-5000.0, -2000.0),
        HeatmapTier.LOSS_2: (-2000.0, -500.0),
        HeatmapTier.LOSS_1: (-500.0, 0.0),
        HeatmapTier.EMPTY: (0.0, 0.0),
        HeatmapTier.PROFIT_1: (0.0, 500.0),
        HeatmapTier.PROFIT_2: (500.0, 2000.0),
        HeatmapTier.PROFIT_3: (2000.0, 5000.0),
        HeatmapTier.PROFIT_4: (5000.0, None),
    }
    return [
        {"tier": tier, "min": lo, "max": hi, "color": TIER_COLORS[tier]}
        for tier, (lo, hi) in bounds.items()
    ]


# ----------------------------------------- DATE KEYS -----------------------------------------
def _as_zone(tz: TzLike) -> Union[ZoneInfo, timezone]:
    return ZoneInfo(tz) if isinstance(tz, str) else tz


def trade_date_key(value: Any, tz: TzLike = "UTC", trade_id: Any = None) -> str:
    """
    Calendar day (YYYY-MM-DD) of a trade timestamp in the zone `tz`.

    - aware datetime / ISO string with offset -> converted to `tz`
    - naive datetime / ISO string without offset -> assumed UTC, then `tz`
    - date / bare "YYYY-MM-DD" -> used as-is, no zone shift
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if len(raw) == 10:
            try:
                return date.fromisoformat(raw).isoformat()
            except ValueError:
                raise InvalidTimestamp(value, trade_id)
        # Supabase/JS style "…Z" suffix
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        # fromisoformat before 3.11 only takes 3 or 6 fraction digits
        raw = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], raw)
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            raise InvalidTimestamp(value, trade_id)
    else:
        raise InvalidTimestamp(value, trade_id)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(_as_zone(tz)).date().isoformat()


def _pnl_of(trade: Mapping[str, Any], pnl_field: str) -> float:
    raw = trade.get(pnl_field)
    if raw is None:
        return 0.0
    return float(raw)


def _notional_of(trade: Mapping[str, Any]) -> float:
    price = trade.get("average_price") or 0
    qty = trade.get("quantity") or 0
    return float(price) * float(qty)


# ----------------------------------------- PERCENT TIERS -----------------------------------------
class PercentTier(str, Enum):
    STRONG_PROFIT = "strong-profit"
    PROFIT = "profit"
    FLAT = "flat"
    LOSS = "loss"
    STRONG_LOSS = "strong-loss"
    NEUTRAL = "neutral"


PERCENT_TIER_COLORS: Dict[PercentTier, str] = {
    PercentTier.STRONG_PROFIT: "#10b981",
    PercentTier.PROFIT: "#34d399b3",
    PercentTier.FLAT: "#404040",
    PercentTier.LOSS: "#f87171b3",
    PercentTier.STRONG_LOSS: "#ef4444",
    PercentTier.NEUTRAL: "#262626",
}


def classify_pnl_percent(pct: float) -> PercentTier:
    """
    Return-on-notional colouring of a day:
    >= 5 strong-profit, >= 1 profit, (-1, 1) flat, <= -5 strong-loss,
    < -1 loss. Exactly -1 (and NaN) falls through to neutral.
    """
    if pct >= 5:
        return PercentTier.STRONG_PROFIT
    if pct >= 1:
        return PercentTier.PROFIT
    if -1 < pct < 1:
        return PercentTier.FLAT
    if pct <= -5:
        return PercentTier.STRONG_LOSS
    if pct < -1:
        return PercentTier.LOSS
    return PercentTier.NEUTRAL


# ----------------------------------------- AGGREGATION -----------------------------------------
@dataclass
class DayBucket:
    date: str
    pnl: float = 0.0
    trades: List[Mapping[str, Any]] = field(default_factory=list)
    trade_count: int = 0
    wins: int = 0
    losses: int = 0
    # sum of average_price * quantity over the day's trades
    notional: float = 0.0

    @property
    def win_rate(self) -> float:
        if not self.trade_count:
            return 0.0
        return self.wins / self.trade_count * 100

    @property
    def pnl_percent(self) -> float:
        """Day P&L over (average notional * trade count); 0 without notional."""
        if self.notional <= 0:
            return 0.0
        return self.pnl / self.notional * 100

    @property
    def tier(self) -> HeatmapTier:
        return classify_pnl(self.pnl)

    @property
    def percent_tier(self) -> PercentTier:
        return classify_pnl_percent(self.pnl_percent)

    def to_dict(self, include_trades: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "date": self.date,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "trade_count": self.trade_count,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "tier": self.tier,
            "color": tier_color(self.tier),
            "percent_tier": self.percent_tier,
            "percent_color": PERCENT_TIER_COLORS[self.percent_tier],
        }
        if include_trades:
            out["trades"] = [dict(t) for t in self.trades]
        return out


def _is_win(outcome: str, pnl_value: float) -> bool:
    return outcome in WIN_OUTCOMES or pnl_value > 0


def _is_loss(outcome: str, pnl_value: float) -> bool:
    return outcome in LOSS_OUTCOMES or pnl_value < 0


def aggregate_trades_by_day(
    trades: Iterable[Mapping[str, Any]],
    tz: TzLike = "UTC",
    date_field: str = "trade_date",
    pnl_field: str = "pnl",
    outcome_field: str = "outcome",
) -> List[DayBucket]:
    """
    Group trades by calendar day in `tz`, summing P&L and counting trades.

    Trades keep their input order inside a bucket; buckets come back sorted
    by ascending date. A missing P&L counts as 0. Any trade whose timestamp
    can't be parsed aborts the whole call with InvalidTimestamp so a caller
    never renders an under-counted total.

    Day totals are math.fsum of the trades' P&L, i.e. the correctly rounded
    sum; they are exact whenever the values fit a float's 53-bit mantissa
    (any realistic amount in cents).

    A trade is a win when its outcome says so (win/profit/won) or its P&L
    is positive, otherwise a loss when the outcome is loss/lost or P&L is
    negative.
    """
    zone = _as_zone(tz)
    buckets: Dict[str, DayBucket] = {}
    pnls: Dict[str, List[float]] = {}
    notionals: Dict[str, List[float]] = {}

    for trade in trades:
        key = trade_date_key(trade.get(date_field), zone, trade_id=trade.get("id"))
        pnl_value = _pnl_of(trade, pnl_field)
        outcome = str(trade.get(outcome_field) or "").strip().lower()

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = DayBucket(date=key)
            pnls[key] = []
            notionals[key] = []
        pnls[key].append(pnl_value)
        notionals[key].append(_notional_of(trade))
        bucket.trades.append(trade)
        bucket.trade_count += 1
        if _is_win(outcome, pnl_value):
            bucket.wins += 1
        elif _is_loss(outcome, pnl_value):
            bucket.losses += 1

    for key, bucket in buckets.items():
        bucket.pnl = math.fsum(pnls[key])
        bucket.notional = math.fsum(notionals[key])

    # YYYY-MM-DD sorts lexicographically in date order
    return [buckets[k] for k in sorted(buckets)]


def summarize_days(buckets: Iterable[DayBucket]) -> Dict[str, Any]:
    days = list(buckets)
    total_trades = sum(d.trade_count for d in days)
    total_wins = sum(d.wins for d in days)

    best: Optional[DayBucket] = max(days, key=lambda d: d.pnl, default=None)
    worst: Optional[DayBucket] = min(days, key=lambda d: d.pnl, default=None)

    return {
        "total_pnl": math.fsum(d.pnl for d in days),
        "total_trades": total_trades,
        "total_wins": total_wins,
        "total_losses": sum(d.losses for d in days),
        "green_days": sum(1 for d in days if d.pnl > 0),
        "red_days": sum(1 for d in days if d.pnl < 0),
        "trading_days": len(days),
        "win_rate": (total_wins / total_trades * 100) if total_trades else 0.0,
        "best_day": best.date if best else None,
        "worst_day": worst.date if worst else None,
    }


# ----------------------------------------- MONTH GRID -----------------------------------------
def month_bounds(year: int, month: int) -> Tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def month_matrix(year: int, month: int) -> List[List[Optional[int]]]:
    """Weeks of the month, Monday first, days outside the month as None."""
    weeks = calendar.Calendar(firstweekday=calendar.MONDAY).monthdayscalendar(year, month)
    return [[d or None for d in week] for week in weeks]
