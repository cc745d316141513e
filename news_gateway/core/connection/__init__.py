"""Connection-level building blocks used by the ConnectionManager."""

from news_gateway.core.connection.broadcaster import ConnectionBroadcaster, is_ws_connected

__all__ = ["ConnectionBroadcaster", "is_ws_connected"]
