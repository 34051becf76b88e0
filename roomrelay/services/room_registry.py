"""
roomrelay.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间登记表 —— 房间 ID → 成员集合，负责进房、换房、离房以及房间内广播。

每次成员变化后都会向该房间**当前**成员广播 ``room_state``；
默认房间清空时删除其历史，其他房间清空后历史保留。
"""
from __future__ import annotations

from roomrelay.core.logging import get_logger
from roomrelay.schemas.events import room_state_event, system_event
from roomrelay.services.history import HistoryStore, now_ms
from roomrelay.services.session import ConnId
from roomrelay.services.transport import Transport

logger = get_logger(__name__)

DEFAULT_ROOM_ID: str = "broadcast"

# 连接在进房时尚未识别的兜底称呼
PLACEHOLDER_NAME: str = "Someone"


class RoomRegistry:
    """所有房间的成员关系。

    Attributes:
        default_room_id: 未指定房间时使用的默认房间。
    """

    def __init__(
        self,
        transport: Transport,
        history: HistoryStore,
        default_room_id: str = DEFAULT_ROOM_ID,
    ) -> None:
        self.transport = transport
        self.history = history
        self.default_room_id = default_room_id
        self._members: dict[str, set[ConnId]] = {}
        self._room_of: dict[ConnId, str] = {}

    def join(self, conn: ConnId, room_id: str, display_name: str | None = None) -> bool:
        """让连接进入 ``room_id``，必要时先离开当前房间。

        Returns:
            是否发生了成员变化；已在该房间时为 ``False``。
        """
        current = self._room_of.get(conn)
        if current == room_id:
            return False

        if current is not None:
            self._remove_member(conn, current)

        self._ensure_room(room_id).add(conn)
        self._room_of[conn] = room_id
        self._broadcast_room_state(room_id)

        name = display_name or PLACEHOLDER_NAME
        self._broadcast_notice(room_id, f"{name} joined")
        logger.info(
            "进入房间 | room=%s | from=%s | 在线: %d",
            room_id, current, self.member_count(room_id),
        )
        return True

    def leave(self, conn: ConnId, display_name: str | None = None) -> str | None:
        """让连接离开当前房间（断开时调用）。

        Returns:
            离开的房间 ID；不在任何房间时为 ``None``。
        """
        room_id = self._room_of.get(conn)
        if room_id is None:
            return None

        self._remove_member(conn, room_id)
        name = display_name or PLACEHOLDER_NAME
        self._broadcast_notice(room_id, f"{name} left")
        logger.info("离开房间 | room=%s | 在线: %d", room_id, self.member_count(room_id))
        return room_id

    def broadcast_to_room(self, room_id: str, text: str) -> int:
        """向房间内所有可写的连接投递一帧文本，不可写的直接跳过。

        Returns:
            实际投递的连接数。
        """
        members = self._members.get(room_id)
        if not members:
            return 0
        delivered = 0
        for conn in list(members):
            if self.transport.is_open(conn):
                self.transport.send(conn, text)
                delivered += 1
        return delivered

    def member_count(self, room_id: str) -> int:
        members = self._members.get(room_id)
        return len(members) if members is not None else 0

    def room_of(self, conn: ConnId) -> str | None:
        return self._room_of.get(conn)

    def members(self, room_id: str) -> frozenset[ConnId]:
        return frozenset(self._members.get(room_id, ()))

    def rooms(self) -> dict[str, int]:
        """所有已创建房间的在线人数快照（包括已清空的房间）。"""
        return {room_id: len(members) for room_id, members in self._members.items()}

    def _ensure_room(self, room_id: str) -> set[ConnId]:
        members = self._members.get(room_id)
        if members is None:
            members = self._members[room_id] = set()
            logger.debug("房间已创建 | room=%s", room_id)
        self.history.ensure(room_id)
        return members

    def _remove_member(self, conn: ConnId, room_id: str) -> None:
        members = self._members.get(room_id)
        if members is not None:
            members.discard(conn)
        self._room_of.pop(conn, None)
        self._broadcast_room_state(room_id)
        if room_id == self.default_room_id and not members:
            self.history.delete(room_id)
            logger.debug("默认房间已清空，历史已删除 | room=%s", room_id)

    def _broadcast_room_state(self, room_id: str) -> None:
        event = room_state_event(room_id, self.member_count(room_id))
        self.broadcast_to_room(room_id, event.encode())

    def _broadcast_notice(self, room_id: str, message: str) -> None:
        event = system_event(message, room_id, now_ms())
        self.broadcast_to_room(room_id, event.encode())
