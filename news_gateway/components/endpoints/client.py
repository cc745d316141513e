"""
Client WebSocket endpoint.

Lifecycle of one connection:

1. Refuse if the gateway is shutting down (close 1001)
2. Authenticate; on failure send an error frame and close 1008 without
   touching the registry
3. Register the session and join ``user:<id>``
4. Send ``connected``, then join the default rooms from the preference store
5. Read frames until the client leaves, is evicted, or goes silent
6. Remove the session
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import Unauthenticated
from news_gateway.components.connection.registry import Session
from news_gateway.components.core.constants import ServerEvent, WSCloseCode
from news_gateway.components.core.context import WebSocketContext
from news_gateway.components.events.types import encode_frame

if TYPE_CHECKING:
    from news_gateway.components.auth.gate import AuthenticationGate
    from news_gateway.components.data.preferences import PreferenceStore
    from news_gateway.components.events.router import ClientEventRouter
    from news_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class ClientEndpoint:
    """
    Runs one client connection from handshake to teardown.

    Usage:
        endpoint = ClientEndpoint(websocket, manager, gate, router, preferences)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        gate: "AuthenticationGate",
        router: "ClientEventRouter",
        preferences: "PreferenceStore",
        endpoint_name: str | None = None,
        max_message_size: int | None = None,
        receive_timeout: float | None = None,
    ) -> None:
        self.websocket = websocket
        self.manager = manager
        self.gate = gate
        self.router = router
        self.preferences = preferences
        self.endpoint_name = endpoint_name or settings.ws_path
        self.max_message_size = max_message_size or settings.ws_max_message_size
        # Three missed heartbeat intervals: the client is gone even if the
        # monitor has not evicted it yet
        self.receive_timeout = receive_timeout or settings.ws_heartbeat_interval * 3
        self.context = WebSocketContext.from_websocket(websocket, self.endpoint_name)
        self.session: Session | None = None

    async def run(self) -> None:
        if self.manager.is_shutting_down:
            self.manager.metrics.increment("connection", "rejected_shutdown")
            self.context.audit("REJECTED_SHUTDOWN")
            await self.websocket.close(code=WSCloseCode.GOING_AWAY, reason="Server shutting down")
            return

        user_id = await self._authenticate()
        if user_id is None:
            return

        await self.websocket.accept()
        session = Session(websocket=self.websocket, user_id=user_id)
        try:
            await self.manager.connect(session)
        except ConnectionError as e:
            self.context.audit("REJECTED_SHUTDOWN", reason=str(e))
            await self.websocket.close(code=WSCloseCode.GOING_AWAY, reason=str(e))
            return

        self.session = session
        self.context.session_id = session.session_id
        self.context.audit("CONNECT")

        reason = "client_disconnect"
        try:
            await self.manager.send_to_session(
                session,
                ServerEvent.CONNECTED,
                {
                    "userId": user_id,
                    "timestamp": int(time.time() * 1000),
                    "server": settings.server_name,
                },
            )
            await self._join_default_rooms(session)
            reason = await self._message_loop(session)
        except WebSocketDisconnect:
            reason = "client_disconnect"
        except RuntimeError as e:
            # Starlette raises RuntimeError when reading a socket the server closed
            reason = "server_closed" if session.closed or session.is_dead else f"runtime_error: {e}"
        finally:
            await self.manager.disconnect(session)
            self.context.audit("DISCONNECT", reason=reason)

    async def _authenticate(self) -> str | None:
        """
        Returns the user identity, or None after refusing the connection.
        """
        try:
            user_id, source = self.gate.authenticate(self.websocket)
        except Unauthenticated as e:
            self.manager.metrics.increment("connection", "rejected_auth")
            self.context.audit("AUTH_FAILED", reason=e.message)
            # The error frame requires an accepted socket
            await self.websocket.accept()
            try:
                await self.websocket.send_text(encode_frame(ServerEvent.ERROR, e.message))
            finally:
                await self.websocket.close(code=WSCloseCode.POLICY_VIOLATION, reason=e.message)
            return None

        self.context.user_id = user_id
        self.context.credential_source = source
        return user_id

    async def _join_default_rooms(self, session: Session) -> None:
        rooms = await self.preferences.get_default_rooms(session.user_id)
        for room in rooms:
            await self.manager.join(session.user_id, room)
        if rooms:
            logger.debug("Default rooms joined", user_id=session.user_id, rooms=rooms)

    async def _message_loop(self, session: Session) -> str:
        """
        Read frames until the connection ends.

        Returns:
            The disconnect reason for the audit log.
        """
        while not session.closed:
            try:
                message = await asyncio.wait_for(
                    self.websocket.receive(), timeout=self.receive_timeout
                )
            except asyncio.TimeoutError:
                self.manager.metrics.increment("connection", "receive_timeouts")
                await self.manager.close_session(session, WSCloseCode.GOING_AWAY, "Connection timeout")
                return "receive_timeout"

            if message["type"] == "websocket.disconnect":
                return "client_disconnect"

            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""

            if len(data) > self.max_message_size:
                self.manager.metrics.increment("connection", "oversized_frames")
                logger.warning(
                    "Message too large, closing connection",
                    user_id=session.user_id,
                    size=len(data),
                    max_size=self.max_message_size,
                )
                await self.manager.close_session(session, WSCloseCode.MESSAGE_TOO_BIG, "Message too big")
                return "message_too_big"

            session.mark_alive()
            await self.router.handle_frame(session, data)

        return "evicted"
