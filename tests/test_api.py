"""Tests for the controller HTTP API."""

import pytest
from fastapi.testclient import TestClient

from strudel_bridge.api.server import create_app
from strudel_bridge.hub.controller import BridgeController, CommandResult
from strudel_bridge.hub.relay_hub import RelayHub
from strudel_bridge.protocol.errors import NoAgentConnectedError


class StubHub:
    is_running = True
    port = 3001

    def client_count(self):
        return 1

    def status(self):
        return {"running": True, "client_count": 1}


class StubController:
    """Controller double with canned answers."""

    def __init__(self, connected=True, snapshot='s("bd sd")'):
        self.hub = StubHub()
        self.connected = connected
        self.snapshot = snapshot
        self.commands = []
        self.snapshot_timeouts = []

    def send_command(self, code, comment=None):
        if not code.strip():
            raise ValueError("code must be a non-empty string")
        self.commands.append((code, comment))
        if not self.connected:
            return CommandResult.failure(NoAgentConnectedError())
        return CommandResult(success=True, message="Pattern sent to 1 agent", delivered=1)

    def stop(self):
        return CommandResult(success=True, message="Stop command sent", delivered=1)

    def connection_status(self):
        return {"connected": self.connected, "count": 1, "port": 3001}

    async def fetch_snapshot(self, timeout_ms=None):
        self.snapshot_timeouts.append(timeout_ms)
        return self.snapshot

    def recent_results(self, limit=10):
        return [{"success": True, "action": "execute"}] * min(limit, 3)


@pytest.fixture
def controller():
    return StubController()


@pytest.fixture
def client(controller):
    return TestClient(create_app(controller))


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["hub_running"] is True
        assert body["agents"] == 1

    def test_status(self, client):
        body = client.get("/api/status").json()

        assert body["connected"] is True
        assert body["count"] == 1
        assert body["hub"]["running"] is True


class TestCommands:
    def test_execute(self, client, controller):
        response = client.post("/api/execute", json={"code": 's("bd")', "comment": "// kick"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert controller.commands == [('s("bd")', "// kick")]

    def test_execute_without_agent_is_conflict(self):
        client = TestClient(create_app(StubController(connected=False)))

        response = client.post("/api/execute", json={"code": "n(0)"})

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "NoAgentConnectedError"

    def test_empty_code_rejected(self, client):
        assert client.post("/api/execute", json={"code": ""}).status_code == 422

    def test_blank_code_rejected(self, client, controller):
        response = client.post("/api/execute", json={"code": "   "})

        assert response.status_code == 422
        assert controller.commands == []

    def test_stop(self, client):
        response = client.post("/api/stop")

        assert response.status_code == 200
        assert response.json()["message"] == "Stop command sent"


class TestSnapshot:
    def test_snapshot(self, client, controller):
        body = client.get("/api/snapshot", params={"timeout_ms": 1500}).json()

        assert body == {"code": 's("bd sd")', "empty": False}
        assert controller.snapshot_timeouts == [1500]

    def test_empty_snapshot(self):
        client = TestClient(create_app(StubController(snapshot="")))
        assert client.get("/api/snapshot").json() == {"code": "", "empty": True}

    def test_invalid_timeout(self, client):
        assert client.get("/api/snapshot", params={"timeout_ms": 0}).status_code == 422


class TestResults:
    def test_results(self, client):
        body = client.get("/api/results", params={"limit": 2}).json()
        assert body["count"] == 2


class TestRealController:
    def test_no_agents(self, hub_config):
        client = TestClient(create_app(BridgeController(RelayHub(hub_config))))

        response = client.post("/api/execute", json={"code": 's("bd")'})

        assert response.status_code == 409
        assert "No browser connected" in response.json()["message"]
        assert client.get("/api/status").json()["connected"] is False
