"""
Integration tests for the read API, served in-process by FastAPI's TestClient
against the temporary test database.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from tradeledger.pipeline.orchestrator import run_matching_pass
from tests.conftest import make_execution, put


@pytest.fixture
def client(db, monkeypatch):
    import tradeledger.dependencies as dependencies
    from tradeledger.app import app

    monkeypatch.setattr(dependencies, "db", db)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded(db):
    opened = datetime(2026, 2, 10, 9, 30)
    closed = datetime(2026, 2, 12, 10, 15)
    db.save_executions([
        make_execution(executed_at=opened, action="Sell to Open", symbol=put(6800), quantity=-1, price=2.50),
        make_execution(executed_at=opened, action="Buy to Open", symbol=put(6790), quantity=1, price=1.00),
        make_execution(executed_at=closed, action="Buy to Close", symbol=put(6800), quantity=1, price=0.10),
        make_execution(executed_at=closed, action="Sell to Close", symbol=put(6790), quantity=-1, price=0.05),
    ])
    run_matching_pass(db, "Schwab", "ACCT1")
    return db.get_trade_groups("Schwab", "ACCT1")[0]


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestGroupsApi:

    def test_list_groups(self, client, seeded):
        response = client.get("/api/groups", params={"account": "ACCT1"})
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        group = body["groups"][0]
        assert group["id"] == seeded.id
        assert group["strategy_type"] == "CreditSpread"
        assert group["outcome"] == "WIN"
        assert group["net_pl"] == pytest.approx(142.36)
        assert group["breakeven"] == pytest.approx(6798.5132)

    def test_list_groups_filters(self, client, seeded):
        assert client.get("/api/groups", params={"account": "ACCT1", "open_only": True}).json()["count"] == 0
        assert client.get("/api/groups", params={"account": "ACCT1", "strategy": "BWB"}).json()["count"] == 0
        assert client.get("/api/groups", params={"account": "OTHER"}).json()["count"] == 0

    def test_account_is_required(self, client):
        assert client.get("/api/groups").status_code == 422

    def test_take_is_bounded(self, client):
        assert client.get("/api/groups", params={"account": "ACCT1", "take": 0}).status_code == 422

    def test_group_executions(self, client, seeded):
        response = client.get(f"/api/groups/{seeded.id}/executions")
        assert response.status_code == 200
        body = response.json()
        assert body["group"]["id"] == seeded.id
        assert body["legs"] == []
        assert [e["action"] for e in body["executions"]] == [
            "Sell to Open", "Buy to Open", "Buy to Close", "Sell to Close",
        ]
        assert body["executions"][0]["contract"] == "SPX 2026-02-20 6800 Put"

    def test_unknown_group(self, client):
        response = client.get("/api/groups/9999/executions")
        assert response.status_code == 404


class TestReportsApi:

    def test_dashboard(self, client, seeded):
        body = client.get("/api/dashboard", params={"account": "ACCT1"}).json()
        assert body["broker"] == "Schwab"
        assert body["kpis"]["trades"] == 1
        assert body["kpis"]["total_pl"] == pytest.approx(142.36)
        assert len(body["trades"]) == 1

    def test_dte_stats(self, client, seeded):
        body = client.get("/api/stats/dte", params={"account": "ACCT1"}).json()
        assert [b["label"] for b in body["buckets"]] == ["8-14"]
        assert body["buckets"][0]["win_rate"] == 1.0

    def test_weekday_stats(self, client, seeded):
        body = client.get("/api/stats/weekday", params={"account": "ACCT1"}).json()
        assert [d["label"] for d in body["days"]] == ["Thursday"]
