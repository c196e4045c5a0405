from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from starter.application import create_app
from starter.core.config import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    SecurityConfig,
)

PASSWORD = "Secret123"


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        auth=AuthConfig(
            access_secret="access-secret",
            refresh_secret="refresh-secret",
            access_token_ttl_seconds=300,
            refresh_token_ttl_seconds=1200,
            issuer="starter-test",
            bcrypt_rounds=4,
            admin_email="admin@example.com",
            admin_username="admin",
            admin_password="Admin1234",
        ),
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'ws.db'}"),
        scheduler=SchedulerConfig(enabled=False, token_cleanup_interval_seconds=60),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=64 * 1024,
        ),
    )


@pytest.fixture()
def client(tmp_path: Path) -> Iterator[TestClient]:
    with TestClient(create_app(_config(tmp_path))) as test_client:
        yield test_client


def _register(client: TestClient, name: str) -> dict[str, Any]:
    response = client.post(
        "/auth/register",
        json={"email": f"{name}@example.com", "username": name, "password": PASSWORD},
    )
    assert response.status_code == 201
    return response.json()


def _admin_token(client: TestClient) -> str:
    response = client.post(
        "/auth/login", json={"email": "admin@example.com", "password": "Admin1234"}
    )
    return response.json()["tokens"]["access_token"]


def _receive_until(websocket: Any, event: str, limit: int = 10) -> dict[str, Any]:
    for _ in range(limit):
        frame = websocket.receive_json()
        if frame["event"] == event:
            return frame["data"]
    raise AssertionError(f"Event {event!r} not received")


def test_socket_rejects_missing_or_invalid_token(client: TestClient) -> None:
    for path in ("/ws", "/ws?token=not-a-token"):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(path):
                pass
        assert exc.value.code == 1008


def test_socket_accepts_query_token_and_reports_presence(client: TestClient) -> None:
    alice = _register(client, "alice")
    token = alice["tokens"]["access_token"]

    with client.websocket_connect(f"/ws?token={token}") as websocket:
        connected = _receive_until(websocket, "connected")
        assert connected["user"]["username"] == "alice"
        announced = _receive_until(websocket, "user-connected")
        assert announced["active_users_count"] == 1

        websocket.send_json({"event": "get-active-users"})
        active = _receive_until(websocket, "active-users")
        assert active["count"] == 1
        assert active["users"][0]["id"] == alice["user"]["id"]

        rest = client.get(
            "/websocket/active-users",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert rest.status_code == 200
        assert rest.json()["count"] == 1
        assert rest.json()["stats"]["users_by_role"] == {"USER": 1}

    stats = client.get(
        "/websocket/users-stats", headers={"Authorization": f"Bearer {token}"}
    )
    assert stats.json()["total_users"] == 0


def test_socket_accepts_bearer_header(client: TestClient) -> None:
    token = _register(client, "alice")["tokens"]["access_token"]

    with client.websocket_connect(
        "/ws", headers={"Authorization": f"Bearer {token}"}
    ) as websocket:
        assert _receive_until(websocket, "connected")["user"]["email"] == "alice@example.com"


def test_private_messages_and_rooms(client: TestClient) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")

    with client.websocket_connect(f"/ws?token={alice['tokens']['access_token']}") as alice_ws:
        _receive_until(alice_ws, "user-connected")
        with client.websocket_connect(f"/ws?token={bob['tokens']['access_token']}") as bob_ws:
            _receive_until(bob_ws, "user-connected")
            _receive_until(alice_ws, "user-connected")

            alice_ws.send_json(
                {"event": "send-message", "data": {"to": bob["user"]["id"], "message": "hi bob"}}
            )
            private = _receive_until(bob_ws, "private-message")
            assert private["message"] == "hi bob"
            assert private["from"]["username"] == "alice"
            assert _receive_until(alice_ws, "message-sent")["to"] == bob["user"]["id"]

            alice_ws.send_json({"event": "send-message", "data": {"to": "ghost", "message": "hello?"}})
            error = _receive_until(alice_ws, "error")
            assert error["error_code"] == "REALTIME_USER_OFFLINE"

            bob_ws.send_json({"event": "join-room", "data": {"room": "lobby"}})
            assert _receive_until(bob_ws, "joined-room")["room"] == "lobby"
            alice_ws.send_json({"event": "join-room", "data": {"room": "lobby"}})
            assert _receive_until(alice_ws, "joined-room")["room"] == "lobby"
            assert _receive_until(bob_ws, "user-joined-room")["user"]["username"] == "alice"

            alice_ws.send_json({"event": "room-message", "data": {"room": "lobby", "message": "all"}})
            assert _receive_until(bob_ws, "room-message")["message"] == "all"
            assert _receive_until(alice_ws, "room-message")["room"] == "lobby"


def test_socket_reports_bad_frames(client: TestClient) -> None:
    token = _register(client, "alice")["tokens"]["access_token"]

    with client.websocket_connect(f"/ws?token={token}") as websocket:
        _receive_until(websocket, "user-connected")

        websocket.send_text("not json")
        assert _receive_until(websocket, "error")["error_code"] == "VALIDATION_ERROR"
        websocket.send_json({"event": "dance"})
        assert "Unknown event" in _receive_until(websocket, "error")["message"]
        websocket.send_json({"event": "join-room", "data": {}})
        assert "join-room" in _receive_until(websocket, "error")["message"]


def test_socket_answers_binary_frames_and_stays_open(client: TestClient) -> None:
    token = _register(client, "alice")["tokens"]["access_token"]

    with client.websocket_connect(f"/ws?token={token}") as websocket:
        _receive_until(websocket, "user-connected")

        websocket.send_bytes(b"\x00\x01")
        error = _receive_until(websocket, "error")
        assert error["error_code"] == "VALIDATION_ERROR"
        assert error["message"] == "Binary frames are not supported"

        websocket.send_json({"event": "get-users-stats"})
        assert _receive_until(websocket, "users-stats")["total_users"] == 1


def test_notification_endpoints(client: TestClient) -> None:
    alice = _register(client, "alice")
    alice_headers = {"Authorization": f"Bearer {alice['tokens']['access_token']}"}
    admin_headers = {"Authorization": f"Bearer {_admin_token(client)}"}

    offline = client.post(
        "/websocket/send-notification",
        json={"user_id": alice["user"]["id"], "message": "ping"},
        headers=admin_headers,
    )
    assert offline.status_code == 200
    assert offline.json()["success"] is False

    with client.websocket_connect(f"/ws?token={alice['tokens']['access_token']}") as websocket:
        _receive_until(websocket, "user-connected")

        sent = client.post(
            "/websocket/send-notification",
            json={"user_id": alice["user"]["id"], "message": "ping"},
            headers=admin_headers,
        )
        assert sent.json()["success"] is True
        notification = _receive_until(websocket, "notification")
        assert notification["message"] == "ping"
        assert notification["type"] == "info"

        denied = client.post("/websocket/broadcast", json={"message": "hey"}, headers=alice_headers)
        assert denied.status_code == 403

        broadcast = client.post("/websocket/broadcast", json={"message": "hey"}, headers=admin_headers)
        assert broadcast.json()["recipients"] == 1
        assert _receive_until(websocket, "broadcast-notification")["message"] == "hey"

        to_role = client.post(
            "/websocket/send-to-role",
            json={"role": "USER", "message": "users only"},
            headers=admin_headers,
        )
        assert to_role.json()["recipients"] == 1
        role_message = _receive_until(websocket, "role-notification")
        assert role_message["target_role"] == "USER"

        missing_body = client.post("/websocket/send-notification", json={}, headers=admin_headers)
        assert missing_body.status_code == 400
