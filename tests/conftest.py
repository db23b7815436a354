from datetime import date
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from tradecal.core.auth import verify_supabase_token
from tradecal.core.config import Settings
from tradecal.main import create_app

USER_ID = "5b0f6d9e-3c1a-4a52-9c57-0e6f2f1d8a11"


class FakeTradeRepository:
    """In-memory stand-in for TradeRepository; records every query."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, fail: bool = False):
        self.rows = rows or []
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def fetch_trades_between(self, user_id: str, start: date, end: date, filters=None):
        self.calls.append({"user_id": user_id, "start": start, "end": end, "filters": filters})
        if self.fail:
            raise RuntimeError("trades_query_failed")
        return list(self.rows)

    def fetch_trade_filters(self, user_id: str):
        return {"outcomes": ["loss", "win"], "strategies": ["ORB"], "symbols": ["NIFTY"]}


@pytest.fixture
def settings():
    return Settings(CALENDAR_TIMEZONE="UTC", SUPABASE_URL="https://example.supabase.co")


@pytest.fixture
def repo():
    return FakeTradeRepository()


@pytest.fixture
def client(settings, repo):
    app = create_app(settings=settings, trades=repo)
    app.dependency_overrides[verify_supabase_token] = lambda: USER_ID
    return TestClient(app)
