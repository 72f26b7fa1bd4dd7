"""End-to-end tests for the signaling WebSocket endpoint."""

from __future__ import annotations

import json
import time
from typing import Callable

from fastapi.testclient import TestClient

from duocall.api.server import create_app
from duocall.config import ServerConfig
from duocall.signaling.server import SignalingManager


def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


def _join(websocket, room: str) -> None:
    websocket.send_text(json.dumps({"type": "join", "room": room}))


def test_two_clients_are_paired_and_relay_offer() -> None:
    app = create_app(config=ServerConfig(static_dir=None))
    registry = app.state.signaling.registry

    with TestClient(app) as client:
        with client.websocket_connect("/") as alice:
            _join(alice, "ABC123")
            _wait_for(lambda: len(registry.members("ABC123")) == 1)

            with client.websocket_connect("/ws") as bob:
                _join(bob, "ABC123")

                assert alice.receive_json() == {"type": "ready", "role": "caller"}
                assert bob.receive_json() == {"type": "ready", "role": "callee"}

                raw = '{"type": "offer", "offer": {"type": "offer", "sdp": "v=0\\r\\n"}}'
                alice.send_text(raw)
                assert bob.receive_text() == raw

                bob.send_text("{broken")
                answer = json.dumps({"type": "answer", "answer": {"type": "answer", "sdp": "v=0"}})
                bob.send_text(answer)
                assert alice.receive_text() == answer

            _wait_for(lambda: len(registry.members("ABC123")) == 1)
        _wait_for(lambda: registry.room_count() == 0)


def test_room_is_removed_when_last_member_disconnects() -> None:
    app = create_app(config=ServerConfig(static_dir=None))
    registry = app.state.signaling.registry

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as alice:
            _join(alice, "ABC123")
            _wait_for(lambda: "ABC123" in registry)
        assert "ABC123" not in registry

        with client.websocket_connect("/ws") as carol, client.websocket_connect("/ws") as dave:
            _join(carol, "ABC123")
            _wait_for(lambda: len(registry.members("ABC123")) == 1)
            _join(dave, "ABC123")
            assert carol.receive_json()["role"] == "caller"
            assert dave.receive_json()["role"] == "callee"


def test_third_client_receives_room_full_error() -> None:
    app = create_app(config=ServerConfig(static_dir=None))
    registry = app.state.signaling.registry

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            _join(alice, "ABC123")
            _wait_for(lambda: len(registry.members("ABC123")) == 1)
            _join(bob, "ABC123")
            alice.receive_json()
            bob.receive_json()

            with client.websocket_connect("/ws") as carol:
                _join(carol, "ABC123")
                error = carol.receive_json()

                assert error["type"] == "error"
                assert error["code"] == "room-full"
                assert len(registry.members("ABC123")) == 2

                candidate = json.dumps({"type": "candidate", "candidate": {"candidate": "candidate:1"}})
                alice.send_text(candidate)
                assert bob.receive_text() == candidate


def test_healthz_reports_rooms_and_connections() -> None:
    app = create_app(config=ServerConfig(profile="test", static_dir=None))
    registry = app.state.signaling.registry

    with TestClient(app) as client:
        assert client.get("/healthz").json() == {
            "status": "ok",
            "profile": "test",
            "rooms": 0,
            "connections": 0,
        }
        with client.websocket_connect("/ws") as alice:
            _join(alice, "ROOM1")
            _wait_for(lambda: registry.room_count() == 1)
            body = client.get("/healthz").json()
            assert body["rooms"] == 1
            assert body["connections"] == 1


def test_idle_room_sweep_notifies_lonely_member() -> None:
    manager = SignalingManager(idle_room_timeout=60.0, sweep_interval=3600.0)
    app = create_app(config=ServerConfig(static_dir=None), manager=manager)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as alice:
            _join(alice, "LONELY")
            _wait_for(lambda: "LONELY" in manager.registry)

            expired = client.portal.call(manager.sweep_idle_rooms, time.monotonic() + 3600.0)

            assert expired == 1
            message = alice.receive_json()
            assert message["code"] == "room-expired"
            assert "LONELY" not in manager.registry


def test_static_client_is_served_when_directory_exists(tmp_path) -> None:
    (tmp_path / "index.html").write_text("<html>call</html>", encoding="utf-8")
    app = create_app(config=ServerConfig(static_dir=tmp_path))

    with TestClient(app) as client:
        response = client.get("/")
        assert response.status_code == 200
        assert "call" in response.text

        with client.websocket_connect("/") as websocket:
            _join(websocket, "ROOM")
            _wait_for(lambda: "ROOM" in app.state.signaling.registry)
