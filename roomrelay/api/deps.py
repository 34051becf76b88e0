from fastapi import WebSocket

from roomrelay.services.chat_hub import ChatHub
from roomrelay.services.transport import WebSocketTransport


def get_chat_hub(websocket: WebSocket) -> ChatHub:
    return websocket.app.state.chat_hub


def get_transport(websocket: WebSocket) -> WebSocketTransport:
    return websocket.app.state.transport
