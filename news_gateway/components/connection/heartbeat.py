"""
Heartbeat Monitor.

Per session: ALIVE -> (probe sent) -> AWAITING_PONG -> ALIVE when any frame
arrives before the next cycle, or AWAITING_PONG -> evicted when nothing
does. Sessions marked dead by a failed send are evicted on the next cycle
as well. This is the only way silently dead connections are reclaimed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shared.config.logging import get_logger, audit_ws_connection
from news_gateway.components.core.constants import (
    ServerEvent,
    WSCloseCode,
    WSConstants,
)
from news_gateway.components.events.types import encode_frame

if TYPE_CHECKING:
    from news_gateway.components.connection.registry import Session
    from news_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class HeartbeatCycleResult:
    evicted: int
    probed: int


class HeartbeatMonitor:
    """
    Periodically probes every session and evicts unresponsive ones.

    Usage:
        monitor = HeartbeatMonitor(manager, interval=30.0)
        task = asyncio.create_task(monitor.run(), name="heartbeat_monitor")
    """

    def __init__(
        self,
        manager: "ConnectionManager",
        interval: float = WSConstants.HEARTBEAT_INTERVAL,
        endpoint: str = "/ws",
    ) -> None:
        self._manager = manager
        self._interval = interval
        self._endpoint = endpoint
        self._cycles = 0
        self._total_evicted = 0
        self._last_cycle_at: float | None = None

    async def run(self) -> None:
        """Run cycles forever. Errors are logged; the loop keeps going."""
        logger.info("Heartbeat monitor started", interval=self._interval)
        while True:
            try:
                await asyncio.sleep(self._interval)
                result = await self.run_cycle()
                if result.evicted:
                    logger.info(
                        "Heartbeat cycle evicted sessions",
                        evicted=result.evicted,
                        probed=result.probed,
                    )
            except asyncio.CancelledError:
                logger.info("Heartbeat monitor stopped", cycles=self._cycles)
                break
            except Exception as e:
                logger.error("Error in heartbeat cycle", error=str(e), exc_info=True)

    async def run_cycle(self) -> HeartbeatCycleResult:
        """
        Evict sessions silent since the last probe, then probe the rest.
        """
        sessions = await self._manager.registry.all_sessions()

        stale = [s for s in sessions if not s.is_alive or s.is_dead]
        survivors = [s for s in sessions if s.is_alive and not s.is_dead]

        if stale:
            await asyncio.gather(*(self._evict(s) for s in stale), return_exceptions=True)

        for session in survivors:
            session.is_alive = False

        probe = encode_frame(ServerEvent.PING, {"timestamp": int(time.time() * 1000)})
        await self._manager.broadcaster.send_many(survivors, probe)

        self._cycles += 1
        self._total_evicted += len(stale)
        self._last_cycle_at = time.time()
        return HeartbeatCycleResult(evicted=len(stale), probed=len(survivors))

    async def _evict(self, session: "Session") -> None:
        reason = "send_failed" if session.is_dead else "heartbeat_timeout"
        session.mark_dead()
        await self._manager.close_session(
            session, WSCloseCode.GOING_AWAY, "Heartbeat timeout"
        )
        await self._manager.registry.remove(session)
        self._manager.metrics.increment("connection", "evicted")
        # Expected reclamation, not an error
        logger.debug(
            "Session evicted",
            user_id=session.user_id,
            session_id=session.session_id,
            reason=reason,
        )
        audit_ws_connection(
            event_type="EVICTED",
            endpoint=self._endpoint,
            user_id=session.user_id,
            session_id=session.session_id,
            reason=reason,
        )

    def get_stats(self) -> dict[str, float | int | None]:
        return {
            "interval": self._interval,
            "cycles": self._cycles,
            "evicted": self._total_evicted,
            "last_cycle_at": self._last_cycle_at,
        }
