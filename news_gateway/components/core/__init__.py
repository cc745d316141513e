"""Core definitions shared by all gateway components."""

from news_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    ServerEvent,
    BusChannel,
)
from news_gateway.components.core.context import WebSocketContext, sanitize_log_data

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "ServerEvent",
    "BusChannel",
    "WebSocketContext",
    "sanitize_log_data",
]
