from datetime import date

from fastapi.testclient import TestClient

from tradecal.core.auth import verify_supabase_token
from tradecal.core.config import Settings
from tradecal.main import create_app

from conftest import USER_ID, FakeTradeRepository


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200 and r.json() == {"ok": True}


def test_month_view(client, repo):
    repo.rows = [
        {"id": "t1", "trade_date": "2024-01-02T09:20:00Z", "pnl": 300},
        {"id": "t2", "trade_date": "2024-01-02T11:05:00Z", "pnl": -100},
        {"id": "t3", "trade_date": "2024-01-03T10:00:00Z", "pnl": 2500},
        # spill-over day fetched for timezone slack, outside the month
        {"id": "t4", "trade_date": "2024-02-01T03:00:00Z", "pnl": 50},
    ]

    r = client.get("/calendar/month", params={"year": 2024, "month": 1})
    assert r.status_code == 200
    body = r.json()

    assert body["timezone"] == "UTC"
    assert [(d["date"], d["pnl"], d["trade_count"], d["tier"]) for d in body["days"]] == [
        ("2024-01-02", 200, 2, "profit-1"),
        ("2024-01-03", 2500, 1, "profit-3"),
    ]
    assert body["summary"]["total_pnl"] == 2700
    assert body["summary"]["trading_days"] == 2
    assert body["weeks"][0] == [1, 2, 3, 4, 5, 6, 7]

    call = repo.calls[0]
    assert call["user_id"] == USER_ID
    assert call["start"] == date(2023, 12, 31)
    assert call["end"] == date(2024, 2, 1)


def test_month_view_passes_filters(client, repo):
    r = client.get(
        "/calendar/month",
        params={"year": 2024, "month": 5, "outcome": ["win"], "symbol": ["nifty"], "strategy": ["ORB", "Gap"]},
    )
    assert r.status_code == 200
    assert repo.calls[0]["filters"] == {
        "outcome": ["win"],
        "strategy": ["ORB", "Gap"],
        "symbol": ["nifty"],
    }


def test_month_view_rejects_bad_month(client):
    r = client.get("/calendar/month", params={"year": 2024, "month": 13})
    assert r.status_code == 422


def test_invalid_stored_timestamp_is_422(client, repo):
    repo.rows = [
        {"id": "t1", "trade_date": "2024-01-02T09:20:00Z", "pnl": 300},
        {"id": "broken", "trade_date": "not-a-date", "pnl": 10},
    ]

    r = client.get("/calendar/month", params={"year": 2024, "month": 1})
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["code"] == "invalid_timestamp"
    assert detail["trade_id"] == "broken"


def test_db_failure_is_500(settings):
    app = create_app(settings=settings, trades=FakeTradeRepository(fail=True))
    app.dependency_overrides[verify_supabase_token] = lambda: USER_ID

    r = TestClient(app).get("/calendar/month", params={"year": 2024, "month": 1})
    assert r.status_code == 500
    assert r.json()["detail"] == "trades_query_failed"


def test_month_uses_calendar_timezone(repo):
    ny = Settings(CALENDAR_TIMEZONE="America/New_York")
    app = create_app(settings=ny, trades=repo)
    app.dependency_overrides[verify_supabase_token] = lambda: USER_ID
    repo.rows = [{"id": "late", "trade_date": "2024-02-01T03:00:00Z", "pnl": -600}]

    r = TestClient(app).get("/calendar/month", params={"year": 2024, "month": 1})
    body = r.json()

    assert body["timezone"] == "America/New_York"
    assert [(d["date"], d["tier"]) for d in body["days"]] == [("2024-01-31", "loss-2")]


def test_heatmap_range(client, repo):
    repo.rows = [
        {"id": "a", "trade_date": "2024-03-01T10:00:00Z", "pnl": -5000},
        {"id": "b", "trade_date": "2024-03-10T10:00:00Z", "pnl": 700},
    ]

    r = client.get("/calendar/heatmap", params={"start": "2024-03-01", "end": "2024-03-31"})
    assert r.status_code == 200
    body = r.json()

    assert body["start"] == "2024-03-01"
    assert [d["tier"] for d in body["days"]] == ["loss-4", "profit-2"]
    assert body["summary"]["red_days"] == 1
    assert body["summary"]["green_days"] == 1


def test_heatmap_defaults_to_current_year(client, repo):
    r = client.get("/calendar/heatmap")
    assert r.status_code == 200
    body = r.json()
    assert body["start"].endswith("-01-01")
    assert body["end"].endswith("-12-31")


def test_heatmap_rejects_bad_ranges(client):
    r = client.get("/calendar/heatmap", params={"start": "2024-03-10", "end": "2024-03-01"})
    assert r.status_code == 400 and r.json()["detail"] == "end_before_start"

    r = client.get("/calendar/heatmap", params={"start": "2023-01-01", "end": "2024-06-01"})
    assert r.status_code == 400 and r.json()["detail"] == "range_too_large"


def test_day_detail(client, repo):
    repo.rows = [
        {"id": "x", "trade_date": "2024-04-09T23:00:00Z", "pnl": 5},
        {"id": "y", "trade_date": "2024-04-10T09:00:00Z", "pnl": 250, "symbol": "NIFTY"},
        {"id": "z", "trade_date": "2024-04-10T13:00:00Z", "pnl": None},
    ]

    r = client.get("/calendar/day/2024-04-10")
    assert r.status_code == 200
    body = r.json()

    assert body["date"] == "2024-04-10"
    assert body["pnl"] == 250
    assert body["trade_count"] == 2
    assert [t["id"] for t in body["trades"]] == ["y", "z"]


def test_day_without_trades_is_empty(client):
    r = client.get("/calendar/day/2024-04-10")
    assert r.status_code == 200
    body = r.json()
    assert body["trade_count"] == 0
    assert body["tier"] == "empty"
    assert body["trades"] == []


def test_filters(client):
    r = client.get("/calendar/filters")
    assert r.status_code == 200
    assert r.json()["symbols"] == ["NIFTY"]


def test_tiers_legend(client):
    r = client.get("/calendar/tiers")
    assert r.status_code == 200
    tiers = r.json()
    assert len(tiers) == 9
    assert tiers[-1] == {"tier": "profit-4", "min": 5000.0, "max": None, "color": "#10b981"}


def test_calendar_requires_token(settings, repo):
    app = create_app(settings=settings, trades=repo)
    r = TestClient(app).get("/calendar/month", params={"year": 2024, "month": 1})
    assert r.status_code == 401


def test_missing_repository_is_503(settings):
    app = create_app(settings=settings)
    app.dependency_overrides[verify_supabase_token] = lambda: USER_ID
    r = TestClient(app).get("/calendar/filters")
    assert r.status_code == 503


def test_app_settings_reach_the_handlers(repo):
    # no dependency override: the factory's settings must be what handlers see
    tokyo = Settings(CALENDAR_TIMEZONE="Asia/Tokyo")
    app = create_app(settings=tokyo, trades=repo)
    app.dependency_overrides[verify_supabase_token] = lambda: USER_ID
    repo.rows = [{"id": "t", "trade_date": "2024-01-31T16:00:00Z", "pnl": 2000}]

    body = TestClient(app).get("/calendar/month", params={"year": 2024, "month": 2}).json()

    assert body["timezone"] == "Asia/Tokyo"
    assert [(d["date"], d["tier"]) for d in body["days"]] == [("2024-02-01", "profit-3")]


def test_month_view_reports_pnl_percent(client, repo):
    repo.rows = [
        {"id": "a", "trade_date": "2024-01-02T09:20:00Z", "pnl": 600, "average_price": 100, "quantity": 50},
        {"id": "b", "trade_date": "2024-01-02T11:05:00Z", "pnl": -100, "average_price": 200, "quantity": 25},
        {"id": "c", "trade_date": "2024-01-03T10:00:00Z", "pnl": 40},
    ]

    days = client.get("/calendar/month", params={"year": 2024, "month": 1}).json()["days"]

    assert days[0]["pnl_percent"] == 5.0
    assert days[0]["percent_tier"] == "strong-profit"
    assert days[0]["percent_color"] == "#10b981"
    assert days[1]["pnl_percent"] == 0.0
    assert days[1]["percent_tier"] == "flat"
