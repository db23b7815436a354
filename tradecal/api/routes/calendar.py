import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from ...core.auth import verify_supabase_token
from ...core.config import Settings, get_settings
from ...schemas.calendar import (
    CalendarDayDetail,
    CalendarFilters,
    CalendarResponse,
    HeatmapResponse,
    TierInfo,
)
from ...services.db import TradeRepository
from ...utils.daily_pnl import (
    DayBucket,
    InvalidTimestamp,
    aggregate_trades_by_day,
    month_bounds,
    month_matrix,
    summarize_days,
    tier_legend,
)
from ..deps import get_trade_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])

MAX_HEATMAP_DAYS = 366

# ----------------------------------------- HELPERS -----------------------------------------
def _buckets_between(
    repo: TradeRepository,
    user_id: str,
    start: date,
    end: date,
    settings: Settings,
    filters: Optional[Dict[str, List[str]]] = None,
) -> List[DayBucket]:
    """
    Day buckets for [start, end] in the calendar timezone.

    trade_date is stored in UTC, so a local day can start or end on the
    neighbouring UTC date; query one extra day each side and drop the
    buckets that fall outside the window after bucketing.
    """
    try:
        rows = repo.fetch_trades_between(
            user_id=user_id,
            start=start - timedelta(days=1),
            end=end + timedelta(days=1),
            filters=filters,
        )
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        buckets = aggregate_trades_by_day(rows, tz=settings.calendar_tz)
    except InvalidTimestamp as e:
        logger.warning("calendar aggregation rejected for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=422,
            detail={"code": "invalid_timestamp", "trade_id": e.trade_id, "value": str(e.value)},
        )

    lo, hi = start.isoformat(), end.isoformat()
    return [b for b in buckets if lo <= b.date <= hi]


def _filters(outcome: List[str], strategy: List[str], symbol: List[str]) -> Dict[str, List[str]]:
    return {
        "outcome": outcome or [],
        "strategy": strategy or [],
        "symbol": symbol or [],
    }

# ----------------------------------------- GET -----------------------------------------
@router.get("/month", response_model=CalendarResponse)
def get_month_calendar(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    outcome: List[str] = Query(default=[]),
    strategy: List[str] = Query(default=[]),
    symbol: List[str] = Query(default=[]),
    user_id: str = Depends(verify_supabase_token),
    repo: TradeRepository = Depends(get_trade_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Per-day P&L, trade count and heatmap tier for a given month,
    plus month totals and the week grid.
    """
    first, last = month_bounds(year, month)
    buckets = _buckets_between(
        repo, user_id, first, last, settings, _filters(outcome, strategy, symbol)
    )

    return CalendarResponse(
        year=year,
        month=month,
        timezone=settings.CALENDAR_TIMEZONE,
        days=[b.to_dict() for b in buckets],
        summary=summarize_days(buckets),
        weeks=month_matrix(year, month),
    )


@router.get("/heatmap", response_model=HeatmapResponse)
def get_heatmap(
    start: Optional[date] = Query(None, description="First day, defaults to Jan 1 of this year"),
    end: Optional[date] = Query(None, description="Last day, defaults to Dec 31 of this year"),
    outcome: List[str] = Query(default=[]),
    strategy: List[str] = Query(default=[]),
    symbol: List[str] = Query(default=[]),
    user_id: str = Depends(verify_supabase_token),
    repo: TradeRepository = Depends(get_trade_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Day buckets over an arbitrary window (the year view of the heatmap).
    """
    this_year = datetime.now(settings.calendar_tz).year
    start = start or date(this_year, 1, 1)
    end = end or date(this_year, 12, 31)

    if end < start:
        raise HTTPException(status_code=400, detail="end_before_start")
    if (end - start).days + 1 > MAX_HEATMAP_DAYS:
        raise HTTPException(status_code=400, detail="range_too_large")

    buckets = _buckets_between(
        repo, user_id, start, end, settings, _filters(outcome, strategy, symbol)
    )

    return HeatmapResponse(
        start=start,
        end=end,
        timezone=settings.CALENDAR_TIMEZONE,
        days=[b.to_dict() for b in buckets],
        summary=summarize_days(buckets),
    )


@router.get("/day/{day}", response_model=CalendarDayDetail)
def get_day(
    day: date = Path(..., description="YYYY-MM-DD"),
    user_id: str = Depends(verify_supabase_token),
    repo: TradeRepository = Depends(get_trade_repository),
    settings: Settings = Depends(get_settings),
):
    """
    One day's bucket with its trades; an empty bucket when nothing was traded.
    """
    buckets = _buckets_between(repo, user_id, day, day, settings)
    bucket = buckets[0] if buckets else DayBucket(date=day.isoformat())
    return bucket.to_dict(include_trades=True)


@router.get("/filters", response_model=CalendarFilters)
def get_calendar_filters(
    user_id: str = Depends(verify_supabase_token),
    repo: TradeRepository = Depends(get_trade_repository),
):
    """
    Distinct filter options for this user's trades
    """
    try:
        return repo.fetch_trade_filters(user_id=user_id)
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/tiers", response_model=List[TierInfo])
def get_tiers():
    """
    Heatmap legend: every tier with its P&L range and colour.
    """
    return tier_legend()
