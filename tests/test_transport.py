"""
tests.test_transport
~~~~~~~~~~~~~~~~~~~~

WebSocketTransport 发送队列 / 关闭逻辑测试（使用 mock WebSocket）。
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from roomrelay.services.transport import CLOSE_CODE_TERMINATED, WebSocketTransport


def make_websocket() -> AsyncMock:
    ws = AsyncMock(spec=WebSocket)
    ws.client_state = WebSocketState.CONNECTED
    ws.application_state = WebSocketState.CONNECTED
    return ws


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_send_is_delivered_by_writer_task() -> None:
    transport = WebSocketTransport()
    ws = make_websocket()
    conn = transport.open(ws)

    transport.send(conn, "hello")
    await settle()

    ws.send_text.assert_awaited_once_with("hello")
    await transport.release(conn)


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_waiting() -> None:
    """慢消费者的队列满时，新消息被丢弃而不是阻塞发送方。"""
    gate = asyncio.Event()

    async def slow_send(text: str) -> None:
        await gate.wait()

    transport = WebSocketTransport(queue_size=1)
    ws = make_websocket()
    ws.send_text.side_effect = slow_send
    conn = transport.open(ws)

    transport.send(conn, "1")
    await settle()  # 写协程取走 "1" 并阻塞
    transport.send(conn, "2")
    transport.send(conn, "3")

    assert transport._channels[conn].dropped == 1

    gate.set()
    await settle()
    assert [c.args[0] for c in ws.send_text.await_args_list] == ["1", "2"]
    await transport.release(conn)


@pytest.mark.asyncio
async def test_closed_socket_is_not_writable() -> None:
    transport = WebSocketTransport()
    ws = make_websocket()
    conn = transport.open(ws)
    ws.client_state = WebSocketState.DISCONNECTED

    transport.send(conn, "hello")
    await settle()

    assert transport.is_open(conn) is False
    ws.send_text.assert_not_awaited()
    await transport.release(conn)


@pytest.mark.asyncio
async def test_terminate_closes_socket() -> None:
    transport = WebSocketTransport()
    ws = make_websocket()
    conn = transport.open(ws)

    transport.terminate(conn)
    await settle()

    assert transport.is_open(conn) is False
    ws.close.assert_awaited_once_with(code=CLOSE_CODE_TERMINATED)
    await transport.release(conn)


@pytest.mark.asyncio
async def test_send_failure_marks_connection_closed() -> None:
    transport = WebSocketTransport()
    ws = make_websocket()
    ws.send_text.side_effect = RuntimeError("socket gone")
    conn = transport.open(ws)

    transport.send(conn, "hello")
    await settle()

    assert transport.is_open(conn) is False
    await transport.release(conn)


@pytest.mark.asyncio
async def test_release_is_idempotent_and_forgets_connection() -> None:
    transport = WebSocketTransport()
    conn = transport.open(make_websocket())

    await transport.release(conn)
    await transport.release(conn)

    assert len(transport) == 0
    assert transport.is_open(conn) is False
    transport.send(conn, "ignored")
