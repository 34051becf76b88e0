"""
roomrelay.schemas
~~~~~~~~~~~~~~~~~
Pydantic models for the WebSocket wire protocol.
"""
from roomrelay.schemas.events import (
    InboundEvent,
    ServerEvent,
    parse_inbound,
)

__all__ = ["InboundEvent", "ServerEvent", "parse_inbound"]
