"""
Tests for the health endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from parkpulse import __version__
from parkpulse.api.deps import Settings, build_runtime
from parkpulse.api.main import create_app
from parkpulse.components.analytics import InMemoryEventStore
from parkpulse.rules.models import Rules


class UnreachableStore(InMemoryEventStore):
    def ping(self) -> None:
        raise OSError("unable to open database file")


class TestHealthy:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert {c["name"] for c in data["checks"]} == {"process", "event_store", "recorder"}
        recorder = next(c for c in data["checks"] if c["name"] == "recorder")
        assert set(recorder["details"]) == {"queued", "written", "failed", "dropped"}

    def test_ready(self, client: TestClient) -> None:
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["ready"] is True

    def test_live(self, client: TestClient) -> None:
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["alive"] is True
        assert response.json()["uptime_seconds"] >= 0


class TestUnhealthy:
    def test_store_unreachable(self, settings: Settings, rules: Rules, time_port: Any) -> None:
        runtime = build_runtime(
            settings, rules, event_store=UnreachableStore(), time_port=time_port
        )
        with TestClient(create_app(runtime)) as client:
            health = client.get("/health")
            ready = client.get("/health/ready")
            live = client.get("/health/live")

        assert health.status_code == 503
        assert health.json()["status"] == "unhealthy"
        assert ready.status_code == 503
        assert ready.json()["ready"] is False
        assert live.status_code == 200
