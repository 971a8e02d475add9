"""Unit tests for health endpoints."""

import pytest
from fastapi.testclient import TestClient

from personalization_service.api.v1 import health


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


def test_readiness_check(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """Readiness reports each dependency and is ready only when all are up."""

    async def database_up() -> bool:
        return True

    async def redis_down() -> bool:
        return False

    monkeypatch.setattr(health, "ping_database", database_up)
    monkeypatch.setattr(health, "ping_redis", redis_down)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["ready"] is False
    assert data["checks"] == {"postgres": True, "redis": False}


def test_readiness_survives_database_errors(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def database_error() -> bool:
        raise ConnectionRefusedError("connection refused")

    async def redis_up() -> bool:
        return True

    monkeypatch.setattr(health, "ping_database", database_error)
    monkeypatch.setattr(health, "ping_redis", redis_up)

    response = client.get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["postgres"] is False


def test_cache_stats(client: TestClient) -> None:
    client.get("/api/v1/recommendations/test-user-123/insights")
    client.get("/api/v1/recommendations/test-user-123/insights")

    response = client.get("/api/v1/health/cache")
    assert response.status_code == 200

    data = response.json()
    assert data["size"] == 1
    assert data["hits"] == 1
    assert data["misses"] == 1
    assert data["max_entries"] == 100
