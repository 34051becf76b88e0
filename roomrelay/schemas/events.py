"""
roomrelay.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 协议事件的 Pydantic 模型。

线上每一帧都是 ``{"type": ..., "payload": {...}}`` 形式的 JSON 对象，
字段名使用 camelCase（``roomId`` / ``userId`` / ``memberCount``），
模型内部统一使用 snake_case，通过 alias 转换。
"""
from __future__ import annotations

from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _cast_text(value: Any) -> str:
    """把标量转为字符串，``None`` 视为空串；对象/数组不接受。"""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    raise ValueError("expected a scalar value")


# ── 入站事件（客户端 → 服务端）──────────────────────────────────────

class IdentifyBody(_CamelModel):
    """``identify`` 事件负载。"""

    name: str = Field(default="", description="期望使用的昵称（未去除空白）")

    @field_validator("name", mode="before")
    @classmethod
    def cast_name(cls, value: Any) -> str:
        return _cast_text(value)


class JoinBody(_CamelModel):
    """``join`` 事件负载。"""

    room_id: str | None = Field(default=None, description="目标房间，缺省时进入默认房间")


class ChatBody(_CamelModel):
    """``chat`` 事件负载。"""

    message: str = Field(default="", description="消息文本")

    @field_validator("message", mode="before")
    @classmethod
    def cast_message(cls, value: Any) -> str:
        return _cast_text(value)


class IdentifyEvent(BaseModel):
    type: Literal["identify"]
    payload: IdentifyBody | None = None


class JoinEvent(BaseModel):
    type: Literal["join"]
    payload: JoinBody | None = None


class ChatEvent(BaseModel):
    type: Literal["chat"]
    payload: ChatBody | None = None


class PongEvent(BaseModel):
    """心跳应答，仅用于刷新存活标记。"""

    type: Literal["pong"]
    payload: dict[str, Any] | None = None


InboundEvent = Annotated[
    Union[IdentifyEvent, JoinEvent, ChatEvent, PongEvent],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_inbound(text: str | bytes) -> InboundEvent | None:
    """解析一帧入站文本。

    Returns:
        识别出的事件；非 JSON、非对象、未知 ``type`` 或字段类型不符时返回 ``None``，
        由调用方按原始聊天文本处理。
    """
    try:
        return _inbound_adapter.validate_json(text)
    except ValidationError:
        return None


# ── 出站事件（服务端 → 客户端）──────────────────────────────────────

class ServerEvent(BaseModel, Generic[T]):
    """统一出站信封。

    .. code-block:: json

        {"type": "room_state", "payload": {"roomId": "general", "memberCount": 2}}
    """

    type: str = Field(..., description="事件类型")
    payload: T = Field(..., description="事件负载")

    def encode(self) -> str:
        """序列化为线上 JSON 文本。"""
        return self.model_dump_json(by_alias=True)


class EmptyPayload(_CamelModel):
    pass


class ServerInfoPayload(_CamelModel):
    session_id: str = Field(..., description="服务实例标识（每次进程启动生成一次）")


class IdentityPayload(_CamelModel):
    name: str
    user_id: str


class ErrorPayload(_CamelModel):
    code: str


class RoomStatePayload(_CamelModel):
    room_id: str
    member_count: int


class SystemPayload(_CamelModel):
    message: str
    room_id: str
    timestamp: int


class ChatRelayPayload(_CamelModel):
    message: str
    sender: str
    user_id: str
    room_id: str
    timestamp: int


class PingPayload(_CamelModel):
    timestamp: int


def server_info_event(session_id: str) -> ServerEvent[ServerInfoPayload]:
    return ServerEvent[ServerInfoPayload](type="server_info", payload=ServerInfoPayload(session_id=session_id))


def require_identity_event() -> ServerEvent[EmptyPayload]:
    return ServerEvent[EmptyPayload](type="require_identity", payload=EmptyPayload())


def identity_event(name: str, user_id: str) -> ServerEvent[IdentityPayload]:
    return ServerEvent[IdentityPayload](type="identity", payload=IdentityPayload(name=name, user_id=user_id))


def identify_error_event(code: str) -> ServerEvent[ErrorPayload]:
    return ServerEvent[ErrorPayload](type="identify_error", payload=ErrorPayload(code=code))


def error_event(code: str) -> ServerEvent[ErrorPayload]:
    return ServerEvent[ErrorPayload](type="error", payload=ErrorPayload(code=code))


def room_state_event(room_id: str, member_count: int) -> ServerEvent[RoomStatePayload]:
    return ServerEvent[RoomStatePayload](
        type="room_state",
        payload=RoomStatePayload(room_id=room_id, member_count=member_count),
    )


def system_event(message: str, room_id: str, timestamp: int) -> ServerEvent[SystemPayload]:
    return ServerEvent[SystemPayload](
        type="system",
        payload=SystemPayload(message=message, room_id=room_id, timestamp=timestamp),
    )


def chat_event(
    message: str, sender: str, user_id: str, room_id: str, timestamp: int,
) -> ServerEvent[ChatRelayPayload]:
    return ServerEvent[ChatRelayPayload](
        type="chat",
        payload=ChatRelayPayload(
            message=message,
            sender=sender,
            user_id=user_id,
            room_id=room_id,
            timestamp=timestamp,
        ),
    )


def ping_event(timestamp: int) -> ServerEvent[PingPayload]:
    return ServerEvent[PingPayload](type="ping", payload=PingPayload(timestamp=timestamp))
