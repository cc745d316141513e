"""
Request IDs for HTTP traffic.

Health probes and control API calls are tagged with the caller's
``X-Request-ID`` (or a fresh one) so every log line written while serving
them can be traced back to a single request. WebSocket traffic is keyed by
session ID instead and never passes through here.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_current_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _current_request_id.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the duration of the request and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        reset_token = _current_request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _current_request_id.reset(reset_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter(logging.Filter):
    """Stamp ``record.request_id``; "-" outside of a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _current_request_id.get() or "-"
        return True
