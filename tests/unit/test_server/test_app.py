"""Tests for the relay REST API server."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from scriptrelay.relay.models import now_ms
from scriptrelay.relay.service import CommandRelay
from scriptrelay.server import create_app


@pytest.fixture
def client() -> TestClient:
    """A test client over a fresh role-aware relay (no auth)."""
    app = create_app(enable_pruner=False)
    return TestClient(app)


@pytest.fixture
def secured_client() -> TestClient:
    app = create_app(api_key="s3cret", require_api_key=True, enable_pruner=False)
    return TestClient(app)


def _command(**overrides) -> dict:
    body = {
        "scriptId": "s1",
        "senderId": "A",
        "senderName": "Admin1",
        "command": "bring",
        "args": {},
        "timestamp": now_ms(),
    }
    body.update(overrides)
    return body


def _register_admin(client: TestClient) -> None:
    resp = client.post(
        "/api/command", json=_command(command="register", args={"isAuthorized": True})
    )
    assert resp.status_code == 200


class TestInfoEndpoints:
    def test_root(self, client: TestClient) -> None:
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert "POST /api/command" in data["endpoints"]
        assert "bring" in data["supportedCommands"]

    def test_status(self, client: TestClient) -> None:
        _register_admin(client)
        client.post("/api/command", json=_command())
        data = client.get("/api/status").json()
        assert data["status"] == "online"
        assert data["commandsCount"] == 1
        assert data["registeredUsers"] == 1
        assert data["authorizedUsers"] == 1
        assert data["filterMode"] == "role"

    def test_status_needs_no_key(self, secured_client: TestClient) -> None:
        assert secured_client.get("/api/status").status_code == 200


class TestSubmitCommand:
    def test_command_received(self, client: TestClient) -> None:
        resp = client.post("/api/command", json=_command())
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["message"] == "Command received"
        assert data["commandId"]

    def test_register_response(self, client: TestClient) -> None:
        resp = client.post(
            "/api/command", json=_command(command="register", args={"isAuthorized": True})
        )
        assert resp.json() == {"success": True, "message": "User registered", "role": "admin"}

    @pytest.mark.parametrize("missing", ["scriptId", "senderId", "command"])
    def test_missing_required_field(self, client: TestClient, missing: str) -> None:
        body = _command()
        del body[missing]
        resp = client.post("/api/command", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing required fields"}

    def test_malformed_body(self, client: TestClient) -> None:
        resp = client.post(
            "/api/command", content="not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_legacy_player_fields(self, client: TestClient) -> None:
        body = _command()
        body["playerId"] = body.pop("senderId")
        body["playerName"] = body.pop("senderName")
        assert client.post("/api/command", json=body).status_code == 200

    def test_numeric_ids_are_accepted(self, client: TestClient) -> None:
        resp = client.post("/api/command", json=_command(senderId=12345))
        assert resp.status_code == 200

    def test_unexpected_failure_is_internal_error(self) -> None:
        relay = MagicMock()
        relay.submit.side_effect = RuntimeError("boom")
        app = create_app(relay=relay, enable_pruner=False)
        resp = TestClient(app).post("/api/command", json=_command())
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_invalid_coordinated_in_flat_mode(self) -> None:
        app = create_app(filter_mode="flat", enable_pruner=False)
        resp = TestClient(app).post(
            "/api/command", json=_command(command="coordinated", args={"targetAlts": "B"})
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid coordinated command data"}


class TestPollCommands:
    def test_scenario_broadcast(self, client: TestClient) -> None:
        _register_admin(client)
        client.post("/api/command", json=_command())

        data = client.get("/api/commands", params={"scriptId": "s1", "senderId": "B"}).json()
        assert data["success"] is True
        assert data["count"] == 1
        cmd = data["commands"][0]
        assert cmd["command"] == "bring"
        assert cmd["isAdminCommand"] is True
        assert cmd["targetAlts"] == "all"
        assert cmd["scriptId"] == "s1"
        assert "createdAt" in cmd

        own = client.get("/api/commands", params={"scriptId": "s1", "senderId": "A"}).json()
        assert own["count"] == 0

    def test_scenario_target(self, client: TestClient) -> None:
        _register_admin(client)
        client.post("/api/command", json=_command(args={"target": "B", "rogue": "x"}))

        c = client.get("/api/commands", params={"scriptId": "s1", "senderId": "C"}).json()
        b = client.get("/api/commands", params={"scriptId": "s1", "senderId": "B"}).json()
        assert c["count"] == 0
        assert b["count"] == 1
        assert b["commands"][0]["args"] == {"target": "B"}

    def test_stale_command_not_returned(self, client: TestClient) -> None:
        _register_admin(client)
        client.post("/api/command", json=_command(timestamp=now_ms() - 60_000))
        data = client.get("/api/commands", params={"scriptId": "s1", "senderId": "B"}).json()
        assert data["count"] == 0

    def test_legacy_player_id_query(self, client: TestClient) -> None:
        _register_admin(client)
        client.post("/api/command", json=_command())
        data = client.get("/api/commands", params={"scriptId": "s1", "playerId": "B"}).json()
        assert data["count"] == 1

    def test_missing_query_fields(self, client: TestClient) -> None:
        resp = client.get("/api/commands", params={"scriptId": "s1"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing required fields"}


class TestAuthentication:
    def test_missing_key_rejected(self, secured_client: TestClient) -> None:
        resp = secured_client.post("/api/command", json=_command())
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid API key"}

    def test_wrong_key_rejected(self, secured_client: TestClient) -> None:
        resp = secured_client.get(
            "/api/commands", params={"scriptId": "s1", "senderId": "B", "apiKey": "nope"}
        )
        assert resp.status_code == 401

    def test_auth_checked_before_validation(self, secured_client: TestClient) -> None:
        resp = secured_client.post("/api/command", json={"apiKey": "wrong"})
        assert resp.status_code == 401

    def test_key_in_body(self, secured_client: TestClient) -> None:
        resp = secured_client.post("/api/command", json=_command(apiKey="s3cret"))
        assert resp.status_code == 200

    def test_key_in_query(self, secured_client: TestClient) -> None:
        resp = secured_client.post(
            "/api/command", json=_command(), params={"apiKey": "s3cret"}
        )
        assert resp.status_code == 200

    def test_required_without_key_is_open(self) -> None:
        app = create_app(api_key=None, require_api_key=True, enable_pruner=False)
        resp = TestClient(app).post("/api/command", json=_command())
        assert resp.status_code == 200

    def test_empty_key_is_not_enforced(self) -> None:
        app = create_app(api_key="", require_api_key=True, enable_pruner=False)
        resp = TestClient(app).get("/api/users")
        assert resp.status_code == 200

    def test_key_not_enforced_when_disabled(self) -> None:
        app = create_app(api_key="s3cret", require_api_key=False, enable_pruner=False)
        resp = TestClient(app).post("/api/command", json=_command(apiKey="whatever"))
        assert resp.status_code == 200


class TestUsersEndpoint:
    def test_lists_users(self, client: TestClient) -> None:
        _register_admin(client)
        client.post(
            "/api/command",
            json=_command(command="register", senderId="B", senderName="Alt1"),
        )
        data = client.get("/api/users").json()
        assert data["success"] is True
        assert data["count"] == 2
        assert data["authorizedCount"] == 1
        roles = {u["senderId"]: u["role"] for u in data["users"]}
        assert roles == {"A": "admin", "B": "alt"}
        assert all("registeredAt" in u for u in data["users"])

    def test_requires_key(self, secured_client: TestClient) -> None:
        assert secured_client.get("/api/users").status_code == 401
        assert secured_client.get("/api/users", params={"apiKey": "s3cret"}).status_code == 200


class TestLifespan:
    def test_starts_and_stops_with_pruner(self) -> None:
        relay = CommandRelay()
        app = create_app(relay=relay, prune_interval=3600)
        with TestClient(app) as c:
            assert c.get("/api/status").status_code == 200
        assert app.state.relay is relay

    def test_startup_logs_relay_limits(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="scriptrelay")
        app = create_app(
            poll_window_ms=5_000, max_age_ms=60_000,
            api_key="s3cret", require_api_key=True, enable_pruner=False,
        )
        with TestClient(app):
            pass
        assert "window=5000ms, max_age=60000ms" in caplog.text
        assert "API key required" in caplog.text
