from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..utils.daily_pnl import HeatmapTier, PercentTier

class CalendarDay(BaseModel):
    """
    Summary of trades for a single calendar day.
    """
    date: str = Field(
        ...,
        description="Date in YYYY-MM-DD (configured calendar timezone) derived from trade_date",
        examples=["2025-12-01"],
    )
    pnl: float = Field(
        ...,
        description="Net profit/loss for that day",
        examples=[305.0, -656.8],
    )
    trade_count: int = Field(
        ...,
        description="Number of trades taken that day",
        examples=[2, 11],
    )
    wins: int = 0
    losses: int = 0
    pnl_percent: float = Field(
        0.0,
        description="Day P&L as percent of traded notional (average_price * quantity), 0 when unknown",
    )
    win_rate: float = Field(0.0, description="Percent of trades counted as wins (outcome or pnl > 0)")
    tier: HeatmapTier = Field(..., description="Heatmap intensity tier")
    color: str = Field(..., description="Heatmap fill colour for the tier")
    percent_tier: PercentTier = PercentTier.FLAT
    percent_color: str = "#404040"

class CalendarDayDetail(CalendarDay):
    trades: List[Dict[str, Any]] = Field(default_factory=list)

class CalendarSummary(BaseModel):
    total_pnl: float = 0.0
    total_trades: int = 0
    total_wins: int = 0
    total_losses: int = 0
    green_days: int = 0
    red_days: int = 0
    trading_days: int = 0
    win_rate: float = 0.0
    best_day: Optional[str] = None
    worst_day: Optional[str] = None

class CalendarResponse(BaseModel):
    """
    Calendar month view: daily summaries, totals and the Monday-first week grid.
    """
    year: int
    month: int
    timezone: str
    days: List[CalendarDay]
    summary: CalendarSummary
    weeks: List[List[Optional[int]]]

class HeatmapResponse(BaseModel):
    start: date
    end: date
    timezone: str
    days: List[CalendarDay]
    summary: CalendarSummary

class TierInfo(BaseModel):
    tier: HeatmapTier
    min: Optional[float] = Field(None, description="Lower P&L bound, None = unbounded")
    max: Optional[float] = Field(None, description="Upper P&L bound, None = unbounded")
    color: str

class CalendarFilters(BaseModel):
    outcomes: List[str]
    strategies: List[str]
    symbols: List[str]
