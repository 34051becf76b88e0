"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用内存中的 ``FakeTransport`` 代替真实 WebSocket，
记录每个连接收到的帧，方便断言广播内容。
"""
from __future__ import annotations

import json
import os
from collections import defaultdict
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
# 端到端测试期间不希望收到心跳探测
os.environ.setdefault("HEARTBEAT_INTERVAL_MS", "600000")

from roomrelay.services.chat_hub import ChatHub  # noqa: E402
from roomrelay.services.history import HistoryStore  # noqa: E402
from roomrelay.services.room_registry import RoomRegistry  # noqa: E402


class FakeTransport:
    """记录发送内容的 ``Transport`` 实现。

    Attributes:
        sent: 连接句柄 → 已解码的帧列表。
        closed: 不可写的连接。
        terminated: 被 ``terminate`` 的连接（按调用顺序）。
    """

    def __init__(self) -> None:
        self.sent: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.closed: set[str] = set()
        self.terminated: list[str] = []

    def send(self, conn: str, text: str) -> None:
        self.sent[conn].append(json.loads(text))

    def is_open(self, conn: str) -> bool:
        return conn not in self.closed

    def terminate(self, conn: str) -> None:
        self.terminated.append(conn)
        self.closed.add(conn)

    def frames(self, conn: str, type_: str | None = None) -> list[dict[str, Any]]:
        return [f for f in self.sent[conn] if type_ is None or f["type"] == type_]

    def payloads(self, conn: str, type_: str) -> list[dict[str, Any]]:
        return [f["payload"] for f in self.frames(conn, type_)]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def history() -> HistoryStore:
    return HistoryStore(limit=100)


@pytest.fixture()
def rooms(transport: FakeTransport, history: HistoryStore) -> RoomRegistry:
    return RoomRegistry(transport, history)


@pytest.fixture()
def hub(transport: FakeTransport) -> ChatHub:
    return ChatHub(transport, history_limit=100, heartbeat_interval=0.01)
