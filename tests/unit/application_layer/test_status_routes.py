"""
Unit Tests for the Status Application

Tests /health and /metrics with FastAPI's TestClient.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from state_service.application.app import create_status_app
from state_service.core.config.constants import ServiceState


class StubService:
    """Minimal stand-in for the lifecycle controller."""

    def __init__(self, metrics, state=ServiceState.RUNNING):
        self.state = state
        self.hostname = "relay-1"
        self.version = "1.0.0"
        self.worker_count = 4
        self.metrics = metrics
        self.store_health = AsyncMock(return_value={"status": "healthy", "connected": True})


@pytest.fixture
def service(metrics):
    return StubService(metrics)


@pytest.fixture
def client(service):
    return TestClient(create_status_app(service))


@pytest.mark.unit
class TestHealthRoute:
    """Test GET /health."""

    def test_running_is_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["state"] == "running"
        assert body["version"] == "1.0.0"
        assert body["hostname"] == "relay-1"
        assert body["workers"] == 4
        assert body["components"]["redis"]["status"] == "healthy"
        assert body["timestamp"].endswith("Z")

    @pytest.mark.parametrize("state", [ServiceState.STARTING, ServiceState.DRAINING, ServiceState.STOPPED])
    def test_not_running_is_unavailable(self, client, service, state):
        service.state = state

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["state"] == state.value

    def test_redis_outage_reported_but_still_running(self, client, service):
        service.store_health.return_value = {"status": "unhealthy", "connected": True, "error": "gone"}

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["components"]["redis"]["status"] == "unhealthy"


@pytest.mark.unit
class TestMetricsRoute:
    """Test GET /metrics."""

    def test_prometheus_text(self, client, metrics):
        metrics.record_processed()
        metrics.observe_processing(0.004)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "timeseries_messages_processed_total 1.0" in response.text
        assert "timeseries_messages_processed_time_seconds_count 1.0" in response.text

    def test_docs_disabled(self, client):
        assert client.get("/docs").status_code == 404
