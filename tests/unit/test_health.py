"""Unit tests for health endpoints and error mapping."""

import pytest
from fastapi.testclient import TestClient

from engagement_service.api.deps import get_activity_store
from engagement_service.api.v1 import health
from engagement_service.exceptions import StoreUnavailable
from engagement_service.services.memory_store import InMemoryActivityStore


def test_health_check(client: TestClient) -> None:
    """Test basic health check returns healthy status."""
    response = client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data
    assert "timestamp" in data


def test_liveness_check(client: TestClient) -> None:
    """Test liveness check returns alive status."""
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "alive"


@pytest.mark.parametrize("postgres_up", [True, False])
def test_readiness_check(client: TestClient, monkeypatch, postgres_up: bool) -> None:
    """Readiness follows PostgreSQL; Redis is reported only."""

    async def fake_check() -> bool:
        return postgres_up

    monkeypatch.setattr(health, "check_postgres", fake_check)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["ready"] is postgres_up
    assert data["checks"] == {"postgres": postgres_up, "redis": False}


class UnreachableStore(InMemoryActivityStore):
    async def increment(self, *args, **kwargs):
        raise StoreUnavailable("connection refused")

    async def list_activities(self, action=None):
        raise StoreUnavailable("connection refused")


def test_store_outage_maps_to_503(app, client: TestClient) -> None:
    app.dependency_overrides[get_activity_store] = lambda: UnreachableStore()

    response = client.post(
        "/api/v1/activities",
        json={"user_id": "u1", "product_id": "p1", "is_logged_in_user": True, "action": "viewed"},
    )
    assert response.status_code == 503
    assert client.get("/api/v1/leads/leaderboard").status_code == 503


def test_unhandled_error_is_json_500(app) -> None:
    class BrokenStore(InMemoryActivityStore):
        async def list_activities(self, action=None):
            raise RuntimeError("boom")

    app.dependency_overrides[get_activity_store] = lambda: BrokenStore()
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/api/v1/leads")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
