"""
roomrelay.services.session
~~~~~~~~~~~~~~~~~~~~~~~~~~

单个连接的会话状态机::

    Connected ──identify──▶ Identified ──join──▶ Joined

状态是显式的带标签变体。需要身份的操作（进房、发言）只接受
``Identified``（``Joined`` 是它的子类），未识别的连接在类型上就无法走到这些分支。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

ConnId = str


@dataclass(frozen=True)
class Connected:
    """已建立连接，尚未声明昵称。"""


@dataclass(frozen=True)
class Identified:
    """已声明昵称，尚未进入任何房间。

    Attributes:
        name: 去除首尾空白后的昵称。
        session_id: 识别成功时签发的会话 ID（线上字段 ``userId``）。
    """

    name: str
    session_id: str


@dataclass(frozen=True)
class Joined(Identified):
    """已声明昵称并处于某个房间。"""

    room_id: str


SessionState = Union[Connected, Identified, Joined]
