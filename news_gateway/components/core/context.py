"""
Connection metadata and log hygiene for client traffic.

Raw client frames and bus payloads end up in log fields when they are
rejected; ``sanitize_log_data`` keeps them short and printable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from shared.config.logging import audit_ws_connection

if TYPE_CHECKING:
    from fastapi import WebSocket


# C0/C1 controls plus invisible formatting marks (zero-width, bidi, BOM)
_UNPRINTABLE = re.compile("[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]")

_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"})


def sanitize_log_data(data: Any, max_length: int = 100) -> str:
    """
    Render untrusted client data for a log field.

    The text is cut to ``max_length`` characters (marked with "..."),
    line breaks and quotes are escaped and other unprintable characters
    are removed.
    """
    if isinstance(data, bytes):
        text = data.decode("utf-8", errors="replace")
    else:
        text = data if isinstance(data, str) else str(data)

    suffix = "..." if len(text) > max_length else ""
    text = text[:max_length].translate(_ESCAPES)
    return _UNPRINTABLE.sub("", text) + suffix


@dataclass
class WebSocketContext:
    """
    Connection metadata for audit logging.

    Usage:
        ctx = WebSocketContext.from_websocket(websocket, "/ws")
        ctx.audit("AUTH_FAILED", reason="Invalid token")
        ctx.user_id = "42"
        ctx.audit("CONNECT")
    """

    endpoint: str
    origin: str | None = None
    client: str | None = None
    credential_source: str | None = None
    user_id: str | None = None
    session_id: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket", endpoint: str) -> "WebSocketContext":
        client = websocket.client
        return cls(
            endpoint=endpoint,
            origin=websocket.headers.get("origin"),
            client=f"{client.host}:{client.port}" if client else None,
        )

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """Only non-None fields are included to reduce log noise."""
        result: dict[str, Any] = {"event_type": event_type, "endpoint": self.endpoint}
        for key in ("origin", "user_id", "session_id"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.client:
            extra.setdefault("client", self.client)
        if self.credential_source:
            extra.setdefault("credential_source", self.credential_source)
        result.update({k: v for k, v in extra.items() if v is not None})
        return result

    def audit(self, event_type: str, **extra: Any) -> None:
        audit_ws_connection(**self.to_audit_dict(event_type, **extra))
