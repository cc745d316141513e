"""
Exception taxonomy for the gateway.

HTTP-facing errors derive from AppException (logs on construction, FastAPI
renders them). Gateway-internal errors derive from GatewayError and are
handled where they occur:

    Unauthenticated   -> connection refused with close code 1008, never registered
    UnknownEvent      -> error frame to the originating session, connection stays open
    BridgeDecodeError -> logged and dropped, the subscription loop continues
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base HTTP exception with automatic logging.
    """

    def __init__(
        self,
        status_code: int,
        detail: Any,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        log_message: str | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(log_message or str(detail), status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ForbiddenError(AppException):
    """
    Control API rejection (403).

    The response body is always ``{"error": "Forbidden"}``; the real reason
    only reaches the log.
    """

    BODY = {"error": "Forbidden"}

    def __init__(self, reason: str | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=self.BODY,
            log_level="warning",
            log_message="Control API request rejected",
            reason=reason,
            **log_context,
        )


class GatewayError(Exception):
    """Base class for errors raised and handled inside the gateway."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(GatewayError):
    """Credential missing, malformed, expired or badly signed."""

    MISSING = "Authenticated required"
    INVALID = "Invalid token"


class UnknownEvent(GatewayError):
    """Inbound client frame that could not be decoded into a known event."""

    INVALID_FORMAT = "Invalid message format"

    @classmethod
    def unknown_name(cls, name: str) -> "UnknownEvent":
        return cls(f"Unknown event: {name}")


class BridgeDecodeError(GatewayError):
    """Bus payload that cannot be turned into a delivery."""

    def __init__(self, message: str, channel: str | None = None):
        super().__init__(message)
        self.channel = channel
