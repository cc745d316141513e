"""
Structured logging for the gateway.

Keyword arguments given to a logger call travel with the record as
structured fields:

    logger.info("Session registered", user_id="42", sessions=2)

Production renders one JSON object per line; development renders a single
coloured line with ``key=value`` pairs. Records emitted while an HTTP
request is handled carry its correlation ID
(see shared.infrastructure.correlation).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

SERVICE_NAME = "news-gateway"


def _request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


class StructuredFormatter(logging.Formatter):
    """One JSON document per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        request_id = _request_id(record)
        if request_id:
            document["request_id"] = request_id

        fields = getattr(record, "extra_data", None)
        if fields:
            document["fields"] = fields

        if record.exc_info:
            document["exc"] = self.formatException(record.exc_info)

        if settings.debug:
            document["at"] = f"{record.module}.{record.funcName}:{record.lineno}"

        return json.dumps(document, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Readable single-line output with level colours."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]
        request_id = _request_id(record)
        if request_id:
            parts.append(f"{self.DIM}{request_id[:8]}{self.RESET}")
        parts.append(f"{record.name} - {record.getMessage()}")

        fields = getattr(record, "extra_data", None)
        if fields:
            parts.append(
                self.DIM + " ".join(f"{key}={value!r}" for key, value in fields.items()) + self.RESET
            )

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept arbitrary keyword fields.

    ``exc_info`` and ``stack_info`` keep their standard meaning; every other
    keyword is attached to the record as ``extra_data``.
    """

    def _log_with_data(self, level: int, msg: str, args: tuple, **fields: Any) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        stack_info = fields.pop("stack_info", False)
        extra = dict(fields.pop("extra", None) or {})
        extra["extra_data"] = fields or None
        self._log(level, msg, args, exc_info=exc_info, extra=extra, stack_info=stack_info)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.ERROR, msg, args, **fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_with_data(logging.CRITICAL, msg, args, **fields)


# Must run before any get_logger() call creates a logger
logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger.

    Called once from the application lifespan.
    """
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy, noisy_level in (
        ("uvicorn.access", logging.WARNING),
        ("uvicorn.error", logging.INFO),
        ("websockets", logging.WARNING),
        ("httpx", logging.WARNING),
        ("httpcore", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(noisy_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Room joined", user_id="42", room="news:sports")
        logger.error("Redis subscriber crashed", channel="news:new", exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


gateway_logger = get_logger("news_gateway")

# Connection and control API audit trail, routable to its own sink
security_audit_logger = get_logger("security.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    user_id: int | str | None = None,
    session_id: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a WebSocket connection event.

    Args:
        event_type: CONNECT, DISCONNECT, AUTH_FAILED, EVICTED or REJECTED_SHUTDOWN.
        endpoint: WebSocket path the client used.
        user_id: Identity of an authenticated client.
        session_id: Per-connection session identifier.
        origin: Origin header of the handshake.
        reason: Why the event happened, mostly for failures.
    """
    level = logging.WARNING if event_type == "AUTH_FAILED" else logging.INFO
    security_audit_logger._log_with_data(
        level,
        f"WS_AUDIT: {event_type}",
        (),
        event_type=event_type,
        endpoint=endpoint,
        user_id=user_id,
        session_id=session_id,
        origin=origin,
        reason=reason,
        **extra,
    )


def audit_control_event(
    success: bool,
    reason: str | None = None,
    ip_address: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a control API call.

    Rejections are logged at WARNING with the real reason, which the caller
    never sees.
    """
    security_audit_logger._log_with_data(
        logging.INFO if success else logging.WARNING,
        "CONTROL_AUDIT: BROADCAST",
        (),
        success=success,
        reason=reason,
        ip_address=ip_address,
        **extra,
    )
