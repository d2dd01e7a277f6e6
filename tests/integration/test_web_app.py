"""
Integration tests for the FastAPI application and WebSocket endpoint.
"""

import os
import time

import pytest
from fastapi.testclient import TestClient

from termplex import __version__
from termplex.web.app import create_app


@pytest.fixture
def client(config, fake_detector):
    app = create_app(config, detector=fake_detector)
    with TestClient(app) as test_client:
        yield test_client


def receive_until(ws, message_type: str, limit: int = 200) -> dict:
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} message received")


def wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.02)


class TestRestApi:
    """Test the HTTP endpoints."""

    def test_health(self, client) -> None:
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == __version__
        assert body["sessions"] == 0
        assert body["tmux"] in ("idle", "polling")
        assert body["connections"]["active_connections"] == 0

    def test_health_without_tmux(self, config, fake_detector) -> None:
        fake_detector.available = False
        with TestClient(create_app(config, detector=fake_detector)) as client:
            assert client.get("/api/health").json()["tmux"] == "disabled"

    def test_sessions_empty(self, client) -> None:
        assert client.get("/api/sessions").json() == []

    def test_delete_unknown_session(self, client) -> None:
        response = client.delete("/api/sessions/s404")

        assert response.status_code == 404
        assert response.json()["error"] == "session_not_found"


@pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="requires /bin/sh")
class TestWebSocketChannel:
    """Drive real shells over the /ws endpoint."""

    def test_create_resize_and_output(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "create"})
            created = receive_until(ws, "session_created")
            session_id = created["sessionId"]
            assert created["shellType"] == "sh"

            ws.send_json({"type": "resize", "sessionId": session_id, "rows": 24, "cols": 80})
            ws.send_json({"type": "input", "sessionId": session_id, "data": "echo ws-$((6*7))\n"})

            text = ""
            while "ws-42" not in text:
                message = receive_until(ws, "output")
                text += message["data"]

            sessions = client.get("/api/sessions").json()
            assert [s["id"] for s in sessions] == [session_id]
            assert sessions[0]["state"] == "running"

    def test_exit_is_delivered(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "create"})
            session_id = receive_until(ws, "session_created")["sessionId"]
            ws.send_json({"type": "resize", "sessionId": session_id, "rows": 24, "cols": 80})
            ws.send_json({"type": "input", "sessionId": session_id, "data": "exit 4\n"})

            exit_message = receive_until(ws, "exit")

        assert exit_message == {"type": "exit", "sessionId": session_id, "code": 4}

    def test_rest_delete_closes_channel_session(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "create"})
            session_id = receive_until(ws, "session_created")["sessionId"]
            ws.send_json({"type": "resize", "sessionId": session_id, "rows": 24, "cols": 80})
            wait_for(lambda: client.get("/api/sessions").json()[0]["state"] == "running")

            response = client.delete(f"/api/sessions/{session_id}")

            assert response.status_code == 204
            assert client.get("/api/sessions").json() == []

    def test_disconnect_tears_down_sessions(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "create"})
            receive_until(ws, "session_created")
            ws.send_json({"type": "create"})
            receive_until(ws, "session_created")

        wait_for(lambda: client.get("/api/health").json()["sessions"] == 0)

    def test_bad_message_gets_error(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            error = receive_until(ws, "error")

        assert error["kind"] == "invalid_message"

    def test_tmux_sessions_listing(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            wait_for(lambda: client.app.state.services.monitor.get_last_sessions())
            ws.send_json({"type": "list_tmux_sessions"})
            listing = receive_until(ws, "tmux_sessions")

        assert [s["name"] for s in listing["tmuxSessions"]] == ["main", "work"]
