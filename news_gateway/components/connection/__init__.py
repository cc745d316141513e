"""Session registry and liveness monitoring."""

from news_gateway.components.connection.registry import (
    Session,
    SessionRegistry,
    validate_room_name,
)
from news_gateway.components.connection.heartbeat import (
    HeartbeatCycleResult,
    HeartbeatMonitor,
)

__all__ = [
    "Session",
    "SessionRegistry",
    "validate_room_name",
    "HeartbeatCycleResult",
    "HeartbeatMonitor",
]
