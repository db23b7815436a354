import logging
from datetime import date
from typing import Any, Dict, List, Optional, Set

from supabase import create_client, Client
from postgrest import APIError

from ..core.config import Settings

logger = logging.getLogger(__name__)

TRADE_COLUMNS = "id, trade_date, pnl, outcome, symbol, strategies, notes, average_price, quantity"


def build_supabase_client(settings: Settings) -> Client:
    # Fail fast if env is missing
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError(
            "Supabase not configured: set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
        )
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


class TradeRepository:
    """
    Read-only access to the trades table, scoped per call to one owner.
    Soft-deleted rows (deleted_at set) are never returned.
    """

    def __init__(self, client: Client):
        self.client = client

    def _owned(self, columns: str, user_id: str):
        return (
            self.client.table("trades")
            .select(columns)
            .eq("user_id", user_id)
            .is_("deleted_at", "null")
        )

    def fetch_trades_between(
        self,
        user_id: str,
        start: date,
        end: date,
        filters: Optional[Dict[str, List[str]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Trades whose trade_date falls on [start, end] (inclusive, whole days),
        oldest first.
        """
        q = (
            self._owned(TRADE_COLUMNS, user_id)
            .gte("trade_date", start.isoformat())
            .lte("trade_date", f"{end.isoformat()}T23:59:59.999Z")
            .order("trade_date", desc=False)
        )

        if filters:
            outcomes = filters.get("outcome") or []
            strategies = filters.get("strategy") or []
            symbols = filters.get("symbol") or []

            if outcomes:
                q = q.in_("outcome", outcomes)

            if symbols:
                q = q.in_("symbol", [s.upper() for s in symbols])

            # strategies contains ALL selected strategies
            if strategies:
                q = q.contains("strategies", strategies)

        try:
            res = q.execute()
        except APIError as e:
            logger.error("trades query failed for user %s: %s", user_id, getattr(e, "message", e))
            raise RuntimeError("trades_query_failed") from e

        rows = res.data or []
        logger.debug("fetched %d trades for %s..%s", len(rows), start, end)
        return rows

    def fetch_trade_filters(self, user_id: str) -> Dict[str, List[str]]:
        """
        Distinct outcomes, strategies and symbols across the user's trades,
        deduped and sorted.
        """
        try:
            res = self._owned("outcome, strategies, symbol", user_id).execute()
        except APIError as e:
            logger.error("filters query failed for user %s: %s", user_id, getattr(e, "message", e))
            raise RuntimeError("trades_query_failed") from e

        outcome_set: Set[str] = set()
        strategy_set: Set[str] = set()
        symbol_set: Set[str] = set()

        for r in res.data or []:
            out = r.get("outcome")
            if out:
                outcome_set.add(str(out))

            raw_strats = r.get("strategies") or []
            if isinstance(raw_strats, list):
                for raw in raw_strats:
                    s = str(raw or "").strip()
                    if s:
                        strategy_set.add(s)

            sym = str(r.get("symbol") or "").strip().upper()
            if sym:
                symbol_set.add(sym)

        return {
            "outcomes": sorted(outcome_set),
            "strategies": sorted(strategy_set, key=lambda x: x.lower()),
            "symbols": sorted(symbol_set),
        }
