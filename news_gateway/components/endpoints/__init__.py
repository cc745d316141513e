"""WebSocket endpoints."""

from news_gateway.components.endpoints.client import ClientEndpoint

__all__ = ["ClientEndpoint"]
