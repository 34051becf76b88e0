"""
roomrelay.api.ws
~~~~~~~~~~~~~~~~

WebSocket 聊天端点 —— 接受任意路径上的连接。

本模块只负责传输层细节（accept、收帧、断开回收），
协议处理全部交给 ``ChatHub``。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from roomrelay.api.deps import get_chat_hub, get_transport
from roomrelay.core.logging import conn_id_ctx_var, get_logger
from roomrelay.services.chat_hub import ChatHub
from roomrelay.services.transport import WebSocketTransport

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/{path:path}")
async def websocket_relay_endpoint(
    websocket: WebSocket,
    hub: ChatHub = Depends(get_chat_hub),
    transport: WebSocketTransport = Depends(get_transport),
) -> None:
    """WebSocket 聊天端点。

    每一帧都是 ``{"type": ..., "payload": {...}}`` 形式的 JSON 文本；
    二进制帧按 UTF-8 解码后同样交给 ``ChatHub`` 处理。
    无论以何种方式结束（客户端关闭、异常、巡检断开），都会执行断开清理。
    """
    await websocket.accept()
    conn = transport.open(websocket)
    token = conn_id_ctx_var.set(conn)

    try:
        logger.info("客户端已连接 | client=%s", websocket.client)
        await hub.connect(conn)

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await hub.handle_text(conn, text)

    except WebSocketDisconnect:
        pass  # 正常断开
    except Exception as e:
        logger.error("WebSocket 异常: %s", e, exc_info=True)
    finally:
        await hub.disconnect(conn)
        await transport.release(conn)
        logger.info("客户端已断开")
        conn_id_ctx_var.reset(token)
