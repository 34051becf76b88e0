"""
tests.test_ws_endpoint
~~~~~~~~~~~~~~~~~~~~~~

FastAPI 端到端测试：健康检查 + WebSocket 聊天完整流程。

必须在 ``with TestClient(app)`` 内使用，确保 lifespan 执行且所有连接共享同一事件循环。
"""
from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from roomrelay.main import app


def identify(name: str) -> dict[str, Any]:
    return {"type": "identify", "payload": {"name": name}}


def join(room_id: str) -> dict[str, Any]:
    return {"type": "join", "payload": {"roomId": room_id}}


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


@pytest.mark.parametrize(
    ("method", "path"),
    [("get", "/"), ("get", "/healthz"), ("post", "/anything/else"), ("delete", "/x")],
)
def test_any_http_request_is_ok(client: TestClient, method: str, path: str) -> None:
    response = getattr(client, method)(path)

    assert response.status_code == 200
    assert response.text == "ok"


def test_handshake_frames(client: TestClient) -> None:
    with client.websocket_connect("/") as ws:
        server_info = ws.receive_json()
        assert server_info["type"] == "server_info"
        assert server_info["payload"]["sessionId"] == app.state.chat_hub.server_session_id
        assert ws.receive_json() == {"type": "require_identity", "payload": {}}


def test_chat_before_identify_rejected(client: TestClient) -> None:
    with client.websocket_connect("/") as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_text("hello?")

        assert ws.receive_json() == {"type": "error", "payload": {"code": "NOT_IDENTIFIED"}}


def test_alice_and_bob_over_websocket(client: TestClient) -> None:
    with client.websocket_connect("/") as alice:
        alice.receive_json()
        alice.receive_json()

        alice.send_json(identify("Alice"))
        assert alice.receive_json()["payload"]["name"] == "Alice"
        alice.send_json(join("general"))
        assert alice.receive_json() == {
            "type": "room_state", "payload": {"roomId": "general", "memberCount": 1},
        }
        assert alice.receive_json()["payload"]["message"] == "Alice joined"

        with client.websocket_connect("/chat") as bob:
            bob.receive_json()
            bob.receive_json()

            bob.send_json(identify("alice"))
            assert bob.receive_json() == {"type": "identify_error", "payload": {"code": "NAME_TAKEN"}}

            bob.send_json(identify("Bob"))
            bob_identity = bob.receive_json()
            assert bob_identity["type"] == "identity"
            bob.send_json(join("general"))
            for ws in (alice, bob):
                assert ws.receive_json() == {
                    "type": "room_state", "payload": {"roomId": "general", "memberCount": 2},
                }
                assert ws.receive_json()["payload"]["message"] == "Bob joined"

            alice.send_json({"type": "chat", "payload": {"message": "hi"}})
            for ws in (alice, bob):
                frame = ws.receive_json()
                assert frame["type"] == "chat"
                assert frame["payload"]["message"] == "hi"
                assert frame["payload"]["sender"] == "Alice"
                assert frame["payload"]["roomId"] == "general"

            bob.send_bytes(b"raw bytes")
            for ws in (alice, bob):
                frame = ws.receive_json()
                assert frame["payload"]["message"] == "raw bytes"
                assert frame["payload"]["userId"] == bob_identity["payload"]["userId"]

        assert alice.receive_json() == {
            "type": "room_state", "payload": {"roomId": "general", "memberCount": 1},
        }
        assert alice.receive_json()["payload"]["message"] == "Bob left"
