"""
Tests for the ROI HTTP endpoints. Most services are replaced with stubs.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from compass.api import admin as admin_api
from compass.api import roi as roi_api
from compass.api.main import app
from compass.api.roi import is_cron_authorized
from compass.core.config import settings
from compass.core.database import get_db
from compass.services.roi import AllocationError


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def job_calls(monkeypatch):
    calls = []

    async def fake_job(**kwargs):
        calls.append(kwargs)
        return {"runId": "run-1", "processed": 0}

    monkeypatch.setattr(roi_api, "run_portfolio_roi_job", fake_job)
    return calls


# =============================================================================
# Cron authorization
# =============================================================================

def test_is_cron_authorized():
    assert is_cron_authorized("s3cret", "s3cret", is_production=True)
    assert not is_cron_authorized("wrong", "s3cret", is_production=False)
    assert not is_cron_authorized(None, "s3cret", is_production=False)
    assert is_cron_authorized(None, "", is_production=False)
    assert not is_cron_authorized(None, "", is_production=True)


def test_cron_with_header_secret_runs_job(client, job_calls, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    response = client.post(
        "/api/v1/cron/portfolio-roi?portfolio_key=Alpha",
        headers={"x-cron-secret": "s3cret"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "results": {"runId": "run-1", "processed": 0}}
    assert job_calls == [{"portfolio_key": "alpha", "trigger": "manual-cron"}]


def test_cron_with_query_secret(client, job_calls, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    response = client.get("/api/v1/cron/portfolio-roi?secret=s3cret")

    assert response.status_code == 200
    assert job_calls[0]["portfolio_key"] is None


def test_cron_wrong_secret_is_unauthorized(client, job_calls, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    response = client.get("/api/v1/cron/portfolio-roi?secret=nope")

    assert response.status_code == 401
    assert job_calls == []


def test_cron_without_secret_in_production_is_server_error(client, job_calls, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")

    response = client.get("/api/v1/cron/portfolio-roi")

    assert response.status_code == 500
    assert response.json()["error"] == "Cron secret missing in production"
    assert job_calls == []


def test_cron_job_failure_returns_details(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "ENVIRONMENT", "local")

    async def failing_job(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(roi_api, "run_portfolio_roi_job", failing_job)

    response = client.get("/api/v1/cron/portfolio-roi")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["details"] == "database unavailable"


# =============================================================================
# Dashboard and admin
# =============================================================================

def test_dashboard_endpoint(client, monkeypatch):
    async def fake_roi(session, portfolio_key, range_key):
        return {
            "portfolioKey": portfolio_key,
            "range": range_key,
            "status": "ok",
            "needsRecompute": False,
            "asOfDate": "2026-03-04",
            "lastComputedAt": None,
            "lastError": None,
            "kpis": {"roiInception": 10.0, "roi30d": 10.0, "maxDrawdown": -5.7, "volatility": 80.1},
            "navSeries": [{"date": "2026-03-04", "nav": 110.0}],
            "lastRebalance": None,
            "lastPriceDates": {"BTC": "2026-03-04"},
        }

    monkeypatch.setattr(roi_api, "get_portfolio_roi", fake_roi)

    response = client.get("/api/v1/roi/alpha?range=3m")

    assert response.status_code == 200
    body = response.json()
    assert body["range"] == "3m"
    assert body["kpis"]["roiInception"] == 10.0
    assert body["navSeries"] == [{"date": "2026-03-04", "nav": 110.0}]


class StubAllocationService:
    published = []

    async def publish(self, **kwargs):
        if kwargs.get("risk_profile") == "YOLO":
            raise AllocationError("Unsupported risk profile: YOLO")
        self.published.append(kwargs)
        return {
            "portfolioKey": kwargs["portfolio_key"],
            "asOfDate": "2026-03-01",
            "items": [{"asset": i.asset, "weight": float(i.weight)} for i in kwargs["items"] or []],
            "cashWeight": float(kwargs["cash_weight"]),
            "recomputeQueued": True,
        }


def test_publish_allocation(client, monkeypatch):
    StubAllocationService.published = []
    monkeypatch.setattr(admin_api, "AllocationService", StubAllocationService)

    response = client.post("/api/v1/admin/roi/allocations", json={
        "portfolio_key": "alpha",
        "as_of_date": "2026-03-01",
        "items": [{"asset": "btc", "weight": 0.6}],
        "cash_weight": 0.4,
    })

    assert response.status_code == 200
    assert response.json()["items"] == [{"asset": "BTC", "weight": 0.6}]
    assert StubAllocationService.published[0]["items"][0].asset == "BTC"


def test_publish_invalid_allocation_is_bad_request(client, monkeypatch):
    monkeypatch.setattr(admin_api, "AllocationService", StubAllocationService)

    response = client.post("/api/v1/admin/roi/allocations", json={
        "portfolio_key": "alpha",
        "risk_profile": "YOLO",
        "primary_asset": "BTC",
    })

    assert response.status_code == 400
    assert "Unsupported" in response.json()["detail"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics_summary(client):
    from compass.core.metrics import metrics

    metrics.lock_contended("run-2", "run-1")

    response = client.get("/api/v1/admin/roi/metrics?hours=1")

    assert response.status_code == 200
    assert response.json()["locks_contended"] == 1


# =============================================================================
# Allocation publish against the database
# =============================================================================

async def test_publish_allocation_persists_and_replaces_same_day(session_factory, monkeypatch):
    from sqlalchemy import select

    from compass.models import PORTFOLIO_SCOPE, AllocationSnapshot, RoiDashboardSnapshot
    from compass.services.allocation_service import AllocationService

    queued = []
    monkeypatch.setattr(
        admin_api,
        "AllocationService",
        lambda: AllocationService(session_factory=session_factory, enqueue=queued.append),
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        first = await http.post("/api/v1/admin/roi/allocations", json={
            "portfolio_key": "Alpha",
            "as_of_date": "2026-03-01",
            "items": [{"asset": "btc", "weight": 0.6}],
            "cash_weight": 0.4,
        })
        second = await http.post("/api/v1/admin/roi/allocations", json={
            "portfolio_key": "alpha",
            "as_of_date": "2026-03-01",
            "items": [{"asset": "eth", "weight": 1.0}],
        })

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["recomputeQueued"] is True
    assert queued == ["alpha", "alpha"]

    async with session_factory() as session:
        rows = (await session.execute(select(AllocationSnapshot))).scalars().all()
        snapshot = (await session.execute(
            select(RoiDashboardSnapshot).where(RoiDashboardSnapshot.scope == PORTFOLIO_SCOPE)
        )).scalar_one()

    assert len(rows) == 1
    assert rows[0].items == [{"asset": "ETH", "weight": 1.0}]
    assert snapshot.portfolio_key == "alpha"
    assert snapshot.needs_recompute is True
