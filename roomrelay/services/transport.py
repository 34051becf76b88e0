"""
roomrelay.services.transport
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

连接传输层 —— 核心只通过 ``Transport`` 协议接触连接：

- ``send(conn, text)``   投递一帧文本，不等待、不抛错
- ``is_open(conn)``      连接当前是否可写
- ``terminate(conn)``    强制关闭连接

``WebSocketTransport`` 是基于 FastAPI ``WebSocket`` 的实现。每个连接有一个
有界发送队列和一个独立的写协程，广播只做 ``put_nowait``，慢消费者的背压
不会传导到持有全局锁的处理流程中；队列满或连接不可写时直接丢弃。
"""
from __future__ import annotations

import asyncio
import contextlib
import uuid
from dataclasses import dataclass
from typing import Protocol

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from roomrelay.core.logging import get_logger
from roomrelay.services.session import ConnId

logger = get_logger(__name__)

# 1001 Going Away：存活巡检判定连接失联时使用
CLOSE_CODE_TERMINATED: int = 1001


class Transport(Protocol):
    def send(self, conn: ConnId, text: str) -> None: ...

    def is_open(self, conn: ConnId) -> bool: ...

    def terminate(self, conn: ConnId) -> None: ...


@dataclass
class _Channel:
    websocket: WebSocket
    queue: asyncio.Queue[str | None]
    writer: asyncio.Task[None] | None = None
    closing: bool = False
    sent: int = 0
    dropped: int = 0


class WebSocketTransport:
    """``Transport`` 的 WebSocket 实现。

    Attributes:
        queue_size: 每个连接的待发送队列长度。
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._channels: dict[ConnId, _Channel] = {}

    def open(self, websocket: WebSocket) -> ConnId:
        """登记一个已 accept 的 WebSocket，返回其连接句柄并启动写协程。"""
        conn: ConnId = f"ws-{uuid.uuid4().hex[:8]}"
        channel = _Channel(websocket=websocket, queue=asyncio.Queue(maxsize=self.queue_size))
        channel.writer = asyncio.create_task(self._write_loop(conn, channel), name=f"writer-{conn}")
        self._channels[conn] = channel
        return conn

    async def release(self, conn: ConnId) -> None:
        """连接结束后回收写协程。可重复调用。"""
        channel = self._channels.pop(conn, None)
        if channel is None:
            return
        channel.closing = True
        if channel.writer is not None and not channel.writer.done():
            channel.writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await channel.writer
        logger.debug(
            "连接通道已回收 | conn=%s | sent=%d | dropped=%d",
            conn, channel.sent, channel.dropped,
        )

    def send(self, conn: ConnId, text: str) -> None:
        channel = self._channels.get(conn)
        if channel is None or not self._writable(channel):
            return
        try:
            channel.queue.put_nowait(text)
        except asyncio.QueueFull:
            channel.dropped += 1
            logger.debug("发送队列已满，丢弃消息 | conn=%s", conn)

    def is_open(self, conn: ConnId) -> bool:
        channel = self._channels.get(conn)
        return channel is not None and self._writable(channel)

    def terminate(self, conn: ConnId) -> None:
        """丢弃未发送的消息并让写协程关闭连接。"""
        channel = self._channels.get(conn)
        if channel is None or channel.closing:
            return
        channel.closing = True
        while not channel.queue.empty():
            channel.queue.get_nowait()
        channel.queue.put_nowait(None)

    def __len__(self) -> int:
        return len(self._channels)

    @staticmethod
    def _writable(channel: _Channel) -> bool:
        ws = channel.websocket
        return (
            not channel.closing
            and ws.application_state == WebSocketState.CONNECTED
            and ws.client_state == WebSocketState.CONNECTED
        )

    async def _write_loop(self, conn: ConnId, channel: _Channel) -> None:
        while True:
            text = await channel.queue.get()
            if text is None:
                try:
                    await channel.websocket.close(code=CLOSE_CODE_TERMINATED)
                except Exception as e:
                    logger.debug("关闭连接失败 | conn=%s | %s", conn, e)
                return
            try:
                await channel.websocket.send_text(text)
                channel.sent += 1
            except Exception as e:
                # 半开连接：标记为不可写，等待下一轮存活巡检清理
                channel.closing = True
                logger.debug("发送失败，停止写入 | conn=%s | %s", conn, e)
                return
