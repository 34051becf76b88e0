"""
roomrelay.services.history
~~~~~~~~~~~~~~~~~~~~~~~~~~

房间历史消息缓冲区 —— 每个房间一个有上限的 FIFO 日志。

历史只在进程内保留，作为内部审计日志使用，**不会**下发给新进入房间的观众，
避免新人看到进房之前的对话。
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ChatMessage:
    """一条广播过的聊天消息。

    Attributes:
        text: 消息文本。
        sender_name: 发送者昵称。
        sender_session_id: 发送者会话 ID。
        room_id: 所在房间。
        timestamp: 服务端收到时的墙钟时间（毫秒）。
    """

    text: str
    sender_name: str
    sender_session_id: str
    room_id: str
    timestamp: int


class HistoryBuffer:
    """单个房间的有界消息日志，超出上限时从最旧的一端淘汰。"""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("history limit must be positive")
        self.limit = limit
        self._messages: deque[ChatMessage] = deque(maxlen=limit)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def snapshot(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


class HistoryStore:
    """房间 ID → ``HistoryBuffer``。没有记录的房间视为空历史。"""

    def __init__(self, limit: int = 100) -> None:
        self.limit = limit
        self._buffers: dict[str, HistoryBuffer] = {}

    def ensure(self, room_id: str) -> HistoryBuffer:
        buffer = self._buffers.get(room_id)
        if buffer is None:
            buffer = self._buffers[room_id] = HistoryBuffer(self.limit)
        return buffer

    def append(self, room_id: str, message: ChatMessage) -> None:
        self.ensure(room_id).append(message)

    def get(self, room_id: str) -> tuple[ChatMessage, ...]:
        buffer = self._buffers.get(room_id)
        return buffer.snapshot() if buffer is not None else ()

    def delete(self, room_id: str) -> None:
        self._buffers.pop(room_id, None)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._buffers
