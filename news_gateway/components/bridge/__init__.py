"""Redis bus to WebSocket translation."""

from news_gateway.components.bridge.bridge import BusBridge
from news_gateway.components.bridge.routes import DEFAULT_ROUTES, ChannelRoute

__all__ = ["BusBridge", "ChannelRoute", "DEFAULT_ROUTES"]
