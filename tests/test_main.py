"""
Tests for the HTTP status endpoints
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from pg_replicator import main


@pytest.fixture
def api(monkeypatch):
    # lifespan 은 with TestClient(...) 로 진입할 때만 실행되므로 여기서는 실행되지 않음
    scheduler = Mock()
    scheduler.get_status.return_value = {"is_running": True, "state": "idle"}
    postgres = Mock()
    postgres.health_check.return_value = {"is_connected": True}
    monkeypatch.setattr(main, "polling_scheduler", scheduler)
    monkeypatch.setattr(main, "postgres_client", postgres)
    monkeypatch.setattr(main, "mongodb_manager", None)
    return TestClient(main.app)


class TestEndpoints:
    def test_root(self, api):
        response = api.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_status(self, api):
        response = api.get("/replicator/status")
        assert response.status_code == 200
        assert response.json()["polling_scheduler"]["state"] == "idle"

    def test_health_without_mongodb(self, api):
        """MongoDB 미설정은 unhealthy 가 아님"""
        body = api.get("/health").json()
        assert body["status"] == "healthy"
        assert body["services"]["mongodb"] == {"mongodb_connected": None}

    def test_events_require_mongodb(self, api):
        assert api.get("/replicator/events").status_code == 503

    def test_events_from_mongodb(self, api, monkeypatch):
        manager = Mock()
        manager.get_recent_events.return_value = [{"_id": "1", "tag": "t", "record": {"id": 1}}]
        monkeypatch.setattr(main, "mongodb_manager", manager)

        body = api.get("/replicator/events?limit=5").json()

        manager.get_recent_events.assert_called_once_with(5)
        assert body["count"] == 1

    def test_status_without_scheduler(self, api, monkeypatch):
        monkeypatch.setattr(main, "polling_scheduler", None)
        assert api.get("/replicator/status").status_code == 503
