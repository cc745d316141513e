"""Zone News real-time WebSocket gateway."""

__version__ = "0.3.0"
