"""Tests for the manual control API."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from vehicle_gate.main import create_app
from vehicle_gate.models.enums import GateState
from vehicle_gate.models.schemas import CacheStats


@pytest.fixture
def worker() -> MagicMock:
    """Return an antenna worker stand-in."""
    worker = MagicMock()
    worker.connected = True
    worker.gate_state = GateState.CLOSED
    worker.reconnect_attempts = 0
    worker.gate.open_gate.return_value = True
    worker.gate.close_gate.return_value = True
    worker.restart.return_value = True
    worker.validator.cache_stats.return_value = CacheStats(size=2, capacity=100, ttl_seconds=300.0)
    worker.validator.clear.return_value = 2
    worker.validator.invalidate.return_value = True
    worker.metrics.snapshot.return_value = {"OPEN_GATE_DEFAULT": 3}
    return worker


@pytest.fixture
def client(worker: MagicMock) -> TestClient:
    # Not used as a context manager, so the lifespan never starts the worker
    return TestClient(create_app(worker))


class TestHealth:
    """Tests for the health endpoint."""

    def test_healthcheck(self, client: TestClient) -> None:
        response = client.get("/api/healthcheck")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["connected"] is True
        assert body["gateState"] == "closed"
        assert body["cache"]["size"] == 2
        assert body["metrics"] == {"OPEN_GATE_DEFAULT": 3}

    def test_healthcheck_degraded(self, client: TestClient, worker: MagicMock) -> None:
        """Test a lost antenna link still answers 200 but reports degraded."""
        worker.connected = False
        worker.reconnect_attempts = 2
        body = client.get("/api/healthcheck").json()
        assert body["status"] == "degraded"
        assert body["reconnectAttempts"] == 2

    def test_openapi_document(self, client: TestClient) -> None:
        assert client.get("/apispec_1.json").status_code == 200
        assert client.get("/swagger").status_code == 200


class TestGateRoutes:
    """Tests for manual gate commands."""

    def test_state(self, client: TestClient, worker: MagicMock) -> None:
        worker.gate_state = GateState.OPEN
        assert client.get("/api/gate/state").json() == {"state": "open"}

    def test_open(self, client: TestClient, worker: MagicMock) -> None:
        response = client.post("/api/gate/open")
        assert response.status_code == 200
        assert response.json()["success"] is True
        worker.gate.open_gate.assert_called_once_with(auto_close=None)

    def test_open_with_auto_close(self, client: TestClient, worker: MagicMock) -> None:
        """Test the path delay is given in milliseconds."""
        response = client.post("/api/gate/open/2500")
        assert response.status_code == 200
        worker.gate.open_gate.assert_called_once_with(auto_close=2.5)

    def test_open_rejected(self, client: TestClient, worker: MagicMock) -> None:
        worker.gate.open_gate.return_value = False
        worker.gate_state = GateState.OPEN
        response = client.post("/api/gate/open")
        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Gate can't be opened, it is open"}

    def test_open_when_disconnected(self, client: TestClient, worker: MagicMock) -> None:
        """Test a lost antenna link is reported instead of the gate state."""
        worker.connected = False
        response = client.post("/api/gate/open")
        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Antenna is not connected"}
        worker.gate.open_gate.assert_not_called()

    def test_close_when_disconnected(self, client: TestClient, worker: MagicMock) -> None:
        worker.connected = False
        response = client.post("/api/gate/close")
        assert response.status_code == 409
        assert response.json()["message"] == "Antenna is not connected"
        worker.gate.close_gate.assert_not_called()

    def test_open_invalid_delay(self, client: TestClient) -> None:
        assert client.post("/api/gate/open/soon").status_code == 422

    def test_close_rejected(self, client: TestClient, worker: MagicMock) -> None:
        worker.gate.close_gate.return_value = False
        response = client.post("/api/gate/close")
        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_close(self, client: TestClient) -> None:
        response = client.post("/api/gate/close")
        assert response.status_code == 200
        assert response.json()["message"] == "Gate closed"

    def test_restart_not_connected(self, client: TestClient, worker: MagicMock) -> None:
        worker.restart.return_value = False
        response = client.post("/api/gate/restart")
        assert response.status_code == 409
        assert response.json()["message"] == "Antenna is not connected"


class TestCacheRoutes:
    """Tests for validation cache maintenance."""

    def test_stats(self, client: TestClient) -> None:
        assert client.get("/api/cache").json() == {"size": 2, "capacity": 100, "ttl_seconds": 300.0}

    def test_clear(self, client: TestClient) -> None:
        assert client.delete("/api/cache").json() == {"success": True, "removed": 2}

    def test_invalidate(self, client: TestClient, worker: MagicMock) -> None:
        response = client.delete("/api/cache/0005624566")
        assert response.status_code == 200
        worker.validator.invalidate.assert_called_once_with("0005624566")

    def test_invalidate_unknown(self, client: TestClient, worker: MagicMock) -> None:
        worker.validator.invalidate.return_value = False
        assert client.delete("/api/cache/0005624566").status_code == 404
