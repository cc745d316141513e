"""
Connection Manager facade.

Composes the session registry, the broadcaster and the metrics collector
behind one object shared by the endpoint, the client event router, the bus
bridge, the control API and the heartbeat monitor.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Iterable

from shared.config.settings import settings
from shared.config.logging import get_logger
from news_gateway.components.connection.registry import Session, SessionRegistry
from news_gateway.components.core.constants import (
    SHUTDOWN_MESSAGE,
    ServerEvent,
    WSCloseCode,
    WSConstants,
    user_room,
)
from news_gateway.components.events.types import Delivery, Target, encode_frame
from news_gateway.components.metrics.collector import MetricsCollector
from news_gateway.core.connection.broadcaster import ConnectionBroadcaster, is_ws_connected

logger = get_logger(__name__)


class ConnectionManager:
    """
    Entry point for everything that touches sessions.

    Usage:
        manager = ConnectionManager()
        await manager.connect(session)
        await manager.deliver(Delivery("new_article", article, Target.room("news:all")))
        await manager.disconnect(session)
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        metrics: MetricsCollector | None = None,
        send_timeout: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.registry = registry or SessionRegistry()
        self.metrics = metrics or MetricsCollector()
        self.broadcaster = ConnectionBroadcaster(
            self.metrics,
            send_timeout=send_timeout if send_timeout is not None else settings.ws_send_timeout,
            batch_size=batch_size or settings.ws_broadcast_batch_size,
        )
        self._started_at = time.time()
        self._shutting_down = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def uptime(self) -> float:
        return round(time.time() - self._started_at, 3)

    async def connect(self, session: Session) -> None:
        """
        Register a session and put its user in the personal room.

        Raises:
            ConnectionError: If the gateway is shutting down.
        """
        if self._shutting_down:
            raise ConnectionError("Server is shutting down")
        await self.registry.register(session.user_id, session)
        await self.registry.join(session.user_id, user_room(session.user_id))

        # shutdown() may have taken its session snapshot while we registered
        if self._shutting_down:
            await self.registry.remove(session)
            raise ConnectionError("Server is shutting down")
        self.metrics.increment("connection", "accepted")

    async def disconnect(self, session: Session) -> bool:
        return await self.registry.remove(session)

    async def join(self, user_id: str, room: str) -> bool:
        return await self.registry.join(user_id, room)

    async def leave(self, user_id: str, room: str) -> bool:
        return await self.registry.leave(user_id, room)

    async def close_session(
        self,
        session: Session,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> None:
        """Close a session's socket, bounded in time. Never raises."""
        ws = session.websocket
        if not is_ws_connected(ws):
            return
        try:
            await asyncio.wait_for(
                ws.close(code=code, reason=reason),
                timeout=WSConstants.CLOSE_TIMEOUT,
            )
        except Exception as e:
            logger.debug(
                "Error closing websocket",
                user_id=session.user_id,
                session_id=session.session_id,
                error=str(e),
            )

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send_to_session(self, session: Session, event: str, data: Any) -> bool:
        """Send a frame to one session only (replies, snapshots, errors)."""
        return await self.broadcaster.send(session, encode_frame(event, data))

    async def deliver(self, delivery: Delivery) -> int:
        """
        Fan out one delivery. A target without live sessions is a no-op.

        Returns:
            Number of sessions the frame was written to.
        """
        return await self.deliver_many([delivery])

    async def deliver_many(self, deliveries: Iterable[Delivery]) -> int:
        """
        Fan out several deliveries.

        Each delivery is encoded once. A session reached by more than one
        target receives an identical frame only once.
        """
        sent = 0
        delivered: set[tuple[int, str]] = set()
        for delivery in deliveries:
            self.metrics.increment("delivery", "total")
            sessions = await self.registry.resolve(delivery.target)
            frame = delivery.encode()
            if not sessions:
                self.metrics.increment("delivery", "no_recipients")
                logger.debug(
                    "Delivery target has no live sessions",
                    event=delivery.event,
                    target=str(delivery.target),
                )
                continue
            recipients = [s for s in sessions if (id(s), frame) not in delivered]
            delivered.update((id(s), frame) for s in recipients)
            sent += await self.broadcaster.send_many(recipients, frame)
        return sent

    async def send_to_user(self, user_id: str | int, event: str, data: Any) -> int:
        return await self.deliver(Delivery(event, data, Target.user(user_id)))

    async def send_to_room(self, room: str, event: str, data: Any) -> int:
        return await self.deliver(Delivery(event, data, Target.room(room)))

    async def broadcast(self, event: str, data: Any) -> int:
        return await self.deliver(Delivery(event, data, Target.everyone()))

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> int:
        """
        Stop accepting, notify every session, then close and remove them.

        Best effort: failures on individual sessions are ignored.

        Returns:
            Number of sessions that were open.
        """
        self._shutting_down = True
        sessions = await self.registry.all_sessions()
        if not sessions:
            return 0

        notice = encode_frame(ServerEvent.SERVER_SHUTDOWN, SHUTDOWN_MESSAGE)
        await self.broadcaster.send_many(
            sessions, notice, timeout=WSConstants.SHUTDOWN_NOTICE_TIMEOUT
        )
        await asyncio.gather(
            *(self.close_session(s, WSCloseCode.GOING_AWAY, "Server shutdown") for s in sessions),
            return_exceptions=True,
        )
        for session in sessions:
            await self.registry.remove(session)

        logger.info("All sessions closed for shutdown", sessions=len(sessions))
        return len(sessions)

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_stats(self, user_id: str | None = None) -> dict[str, Any]:
        """Payload of the ``stats`` frame."""
        user_rooms = sorted(await self.registry.rooms_for(user_id)) if user_id else []
        return {
            "totalConnections": self.registry.session_count,
            "totalUsers": self.registry.user_count,
            "totalRooms": self.registry.room_count,
            "userRooms": user_rooms,
            "serverTime": datetime.now(timezone.utc).isoformat(),
            "uptime": self.uptime,
        }

    def get_health(self) -> dict[str, Any]:
        """Lock-free summary for the basic health check."""
        return {
            "connections": self.registry.session_count,
            "users": self.registry.user_count,
            "rooms": self.registry.room_count,
            "uptime": self.uptime,
        }

    def get_detailed_stats(self) -> dict[str, Any]:
        return {
            **self.get_health(),
            "shutting_down": self._shutting_down,
            "metrics": self.metrics.get_snapshot(),
        }
