"""
Connection Broadcaster.

Writes pre-encoded text frames to sessions. Fan-out runs in batches of
concurrent sends; each send is bounded by a timeout so one slow client
cannot hold up the others.

Slow consumer policy: a send that fails or times out drops that frame for
that session and marks the session dead. Later fan-outs skip it and the
next heartbeat cycle evicts it.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from news_gateway.components.core.constants import WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket
    from news_gateway.components.connection.registry import Session
    from news_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette does not expose transitional states, so a connection may
    still look connected briefly after the peer started closing.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class ConnectionBroadcaster:
    """
    Sends frames to sessions with bounded per-session latency.
    """

    def __init__(
        self,
        metrics: "MetricsCollector",
        send_timeout: float = WSConstants.SEND_TIMEOUT,
        batch_size: int = WSConstants.BROADCAST_BATCH_SIZE,
    ) -> None:
        """
        Args:
            metrics: Collects delivery metrics.
            send_timeout: Upper bound in seconds for one frame write.
            batch_size: Sessions written concurrently per batch.
        """
        self._metrics = metrics
        self._send_timeout = send_timeout
        self._batch_size = max(1, batch_size)

    async def send(
        self,
        session: "Session",
        frame: str,
        timeout: float | None = None,
    ) -> bool:
        """
        Write one frame to one session.

        Returns:
            True if the frame was written. Never raises for transport errors.
        """
        if not session.deliverable or not is_ws_connected(session.websocket):
            return False

        try:
            await asyncio.wait_for(
                session.websocket.send_text(frame),
                timeout=timeout if timeout is not None else self._send_timeout,
            )
            self._metrics.increment("delivery", "frames_sent")
            return True
        except asyncio.TimeoutError:
            session.mark_dead()
            self._metrics.increment("delivery", "send_timeouts")
            self._metrics.increment("delivery", "frames_failed")
            logger.warning(
                "Send timed out, marking session dead",
                user_id=session.user_id,
                session_id=session.session_id,
            )
            return False
        except Exception as e:
            session.mark_dead()
            self._metrics.increment("delivery", "frames_failed")
            logger.debug(
                "Send failed, marking session dead",
                user_id=session.user_id,
                session_id=session.session_id,
                error=str(e),
            )
            return False

    async def send_many(
        self,
        sessions: Iterable["Session"],
        frame: str,
        timeout: float | None = None,
    ) -> int:
        """
        Write the same frame to many sessions in concurrent batches.

        Returns:
            Number of sessions the frame was written to.
        """
        targets = list(sessions)
        sent = 0
        for start in range(0, len(targets), self._batch_size):
            batch = targets[start:start + self._batch_size]
            results = await asyncio.gather(
                *(self.send(session, frame, timeout) for session in batch),
                return_exceptions=True,
            )
            sent += sum(1 for result in results if result is True)
        return sent
