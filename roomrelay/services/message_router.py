"""
roomrelay.services.message_router
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

消息路由 —— 解析入站帧、执行"先识别后操作"的规则，并分发到昵称目录 / 房间登记表。

协议:
  - ``identify {name}``  → ``identity`` / ``identify_error``，空昵称静默忽略
  - ``join {roomId}``    → 进入房间，缺省为默认房间
  - ``chat {message}``   → 写入历史并广播到当前房间（未进房时为默认房间）
  - ``pong``             → 仅刷新存活标记
  - 其他任何内容         → 原样作为聊天文本处理

本类不做并发控制，所有调用由 ``ChatHub`` 在同一把锁内完成。
"""
from __future__ import annotations

from roomrelay.core.logging import get_logger
from roomrelay.schemas.events import (
    ChatEvent,
    IdentifyEvent,
    JoinEvent,
    PongEvent,
    ServerEvent,
    chat_event,
    error_event,
    identify_error_event,
    identity_event,
    parse_inbound,
    require_identity_event,
    server_info_event,
)
from roomrelay.services.connection_registry import ConnectionRegistry
from roomrelay.services.history import ChatMessage, HistoryStore, now_ms
from roomrelay.services.identity_directory import (
    EmptyNameError,
    IdentityDirectory,
    NameTakenError,
)
from roomrelay.services.room_registry import RoomRegistry
from roomrelay.services.session import (
    ConnId,
    Connected,
    Identified,
    Joined,
    SessionState,
)
from roomrelay.services.transport import Transport

logger = get_logger(__name__)

NOT_IDENTIFIED: str = "NOT_IDENTIFIED"


class MessageRouter:
    """单条入站事件的处理流程。

    Attributes:
        server_session_id: 服务实例标识，连接建立时通过 ``server_info`` 下发。
    """

    def __init__(
        self,
        transport: Transport,
        connections: ConnectionRegistry,
        identities: IdentityDirectory,
        rooms: RoomRegistry,
        history: HistoryStore,
        server_session_id: str,
    ) -> None:
        self.transport = transport
        self.connections = connections
        self.identities = identities
        self.rooms = rooms
        self.history = history
        self.server_session_id = server_session_id

    # ── 生命周期 ──────────────────────────────────────────────────────

    def on_connect(self, conn: ConnId) -> None:
        self.connections.register(conn)
        self._reply(conn, server_info_event(self.server_session_id))
        self._reply(conn, require_identity_event())

    def on_disconnect(self, conn: ConnId) -> None:
        """离开房间、清除昵称、注销连接。对未登记的连接无副作用。"""
        state = self.state_of(conn)
        if isinstance(state, Joined):
            self.rooms.leave(conn, state.name)
        self.identities.forget(conn)
        self.connections.unregister(conn)

    def state_of(self, conn: ConnId) -> SessionState:
        identity = self.identities.get(conn)
        if identity is None:
            return Connected()
        room_id = self.rooms.room_of(conn)
        if room_id is None:
            return identity
        return Joined(name=identity.name, session_id=identity.session_id, room_id=room_id)

    # ── 入站分发 ──────────────────────────────────────────────────────

    def dispatch(self, conn: ConnId, text: str) -> None:
        """处理一帧入站文本。任何入站帧都视为存活应答。"""
        self.connections.mark_alive(conn)

        event = parse_inbound(text)
        if event is None:
            self._on_chat(conn, text)
        elif isinstance(event, PongEvent):
            return
        elif isinstance(event, IdentifyEvent):
            self._on_identify(conn, event.payload.name if event.payload is not None else "")
        elif isinstance(event, JoinEvent):
            self._on_join(conn, event.payload.room_id if event.payload is not None else None)
        elif isinstance(event, ChatEvent):
            self._on_chat(conn, event.payload.message if event.payload is not None else "")

    def _on_identify(self, conn: ConnId, raw_name: str) -> None:
        try:
            identity = self.identities.identify(conn, raw_name)
        except EmptyNameError:
            logger.debug("空昵称，忽略")
            return
        except NameTakenError as e:
            logger.info("昵称冲突 | name=%s", e.name)
            self._reply(conn, identify_error_event(e.code))
            return
        self._reply(conn, identity_event(identity.name, identity.session_id))

    def _on_join(self, conn: ConnId, raw_room_id: str | None) -> None:
        sender = self._require_identity(conn)
        if sender is None:
            return
        room_id = (raw_room_id or "").strip() or self.rooms.default_room_id
        self.rooms.join(conn, room_id, sender.name)

    def _on_chat(self, conn: ConnId, text: str) -> None:
        sender = self._require_identity(conn)
        if sender is None:
            return
        self._relay_chat(sender, text)

    def _require_identity(self, conn: ConnId) -> Identified | None:
        """返回已识别的会话状态；未识别时回复 ``NOT_IDENTIFIED``。"""
        state = self.state_of(conn)
        if isinstance(state, Identified):
            return state
        self._reply(conn, error_event(NOT_IDENTIFIED))
        return None

    def _relay_chat(self, sender: Identified, text: str) -> None:
        if not text:
            return
        room_id = sender.room_id if isinstance(sender, Joined) else self.rooms.default_room_id
        message = ChatMessage(
            text=text,
            sender_name=sender.name,
            sender_session_id=sender.session_id,
            room_id=room_id,
            timestamp=now_ms(),
        )
        self.history.append(room_id, message)
        event = chat_event(
            message=message.text,
            sender=message.sender_name,
            user_id=message.sender_session_id,
            room_id=message.room_id,
            timestamp=message.timestamp,
        )
        self.rooms.broadcast_to_room(room_id, event.encode())

    def _reply(self, conn: ConnId, event: ServerEvent) -> None:
        if self.transport.is_open(conn):
            self.transport.send(conn, event.encode())
