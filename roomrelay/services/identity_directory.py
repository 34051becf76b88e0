"""
roomrelay.services.identity_directory
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

昵称目录 —— 维护 连接句柄 → (昵称, 会话 ID) 的映射，并保证昵称唯一。

昵称比较前统一去除首尾空白并转为小写，只与当前在线且已识别的连接比较。
"""
from __future__ import annotations

import uuid

from roomrelay.core.logging import get_logger
from roomrelay.services.session import ConnId, Identified

logger = get_logger(__name__)


class IdentityError(Exception):
    """昵称声明失败的基类。``code`` 为下发给客户端的错误码。"""

    code: str = "IDENTIFY_FAILED"


class NameTakenError(IdentityError):
    code = "NAME_TAKEN"

    def __init__(self, name: str) -> None:
        super().__init__(f"name already taken: {name!r}")
        self.name = name


class EmptyNameError(IdentityError):
    code = "EMPTY_NAME"

    def __init__(self) -> None:
        super().__init__("name is empty after trimming")


def _normalize(name: str) -> str:
    return name.strip().lower()


class IdentityDirectory:
    """连接昵称目录。

    Attributes:
        session_id_length: 会话 ID 的十六进制字符数。
    """

    session_id_length: int = 12

    def __init__(self) -> None:
        self._identities: dict[ConnId, Identified] = {}
        # 本进程签发过的全部会话 ID，保证不重复使用
        self._issued: set[str] = set()

    def identify(self, conn: ConnId, raw_name: str) -> Identified:
        """为连接声明昵称。

        已识别的连接再次声明会覆盖原昵称并签发新的会话 ID；
        与自身当前昵称相同（忽略大小写）不视为冲突。

        Args:
            conn: 连接句柄。
            raw_name: 客户端提交的原始昵称。

        Returns:
            新的 ``Identified`` 记录。

        Raises:
            EmptyNameError: 去除空白后为空。
            NameTakenError: 昵称已被其他连接占用。
        """
        name = raw_name.strip()
        if not name:
            raise EmptyNameError()
        if self.is_name_taken(name, exclude=conn):
            raise NameTakenError(name)

        identity = Identified(name=name, session_id=self._new_session_id())
        self._identities[conn] = identity
        logger.info("昵称已登记 | name=%s | userId=%s", name, identity.session_id)
        return identity

    def is_name_taken(self, name: str, exclude: ConnId | None = None) -> bool:
        """昵称是否已被 ``exclude`` 以外的连接占用。"""
        target = _normalize(name)
        return any(
            _normalize(identity.name) == target
            for conn, identity in self._identities.items()
            if conn != exclude
        )

    def is_identified(self, conn: ConnId) -> bool:
        return conn in self._identities

    def get(self, conn: ConnId) -> Identified | None:
        return self._identities.get(conn)

    def forget(self, conn: ConnId) -> None:
        """移除连接的昵称记录（断开时调用）。会话 ID 不会再次签发。"""
        self._identities.pop(conn, None)

    def __len__(self) -> int:
        return len(self._identities)

    def _new_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex[: self.session_id_length]
            if session_id not in self._issued:
                self._issued.add(session_id)
                return session_id
