"""Internal control API."""

from news_gateway.components.control.routes import BroadcastRequest, router

__all__ = ["BroadcastRequest", "router"]
