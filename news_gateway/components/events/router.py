"""
Client Event Router.

Stateless dispatcher over the decoded client events. Every reply, snapshot
and error goes to the originating session only.

Subscriptions map to rooms:

    news       -> news:<filters.category or "all">   (+ news_update snapshot)
    reactions  -> article:<filters.articleId>
    user       -> user:<own id>
    analytics  -> analytics

The room is joined before the snapshot is read, so an event published in
between is delivered live instead of being missed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.utils.exceptions import UnknownEvent
from news_gateway.components.connection.registry import validate_room_name
from news_gateway.components.core.constants import (
    ROOM_ANALYTICS,
    ServerEvent,
    WSConstants,
    article_room,
    news_room,
    user_room,
)
from news_gateway.components.core.context import sanitize_log_data
from news_gateway.components.events.types import (
    ClientEvent,
    ClientEventKind,
    JoinRoomEvent,
    LeaveRoomEvent,
    SubscribeEvent,
    UnsubscribeEvent,
    parse_client_frame,
)

if TYPE_CHECKING:
    from news_gateway.components.connection.registry import Session
    from news_gateway.components.data.articles import ArticleStore
    from news_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RoutingResult:
    """Outcome of one inbound frame."""

    kind: ClientEventKind | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _checked_room(room: str) -> str:
    try:
        return validate_room_name(room)
    except ValueError as e:
        raise UnknownEvent(str(e))


def subscription_room(session: "Session", event: SubscribeEvent) -> str:
    """
    Compute the room behind a subscription.

    Raises:
        UnknownEvent: For unknown subscription types, missing filters or
            filters that would produce an over-long room name.
    """
    filters = event.filters
    if event.type == "news":
        category = filters.get("category")
        if category is not None and not isinstance(category, str):
            raise UnknownEvent("Invalid subscription filter: category must be a string")
        return _checked_room(news_room(category.strip() if category else None))
    if event.type == "reactions":
        article_id = filters.get("articleId", filters.get("article_id"))
        if isinstance(article_id, bool) or not isinstance(article_id, (int, str)) or not str(article_id).strip():
            raise UnknownEvent("Invalid subscription filter: articleId is required")
        return _checked_room(article_room(str(article_id).strip()))
    if event.type == "user":
        return user_room(session.user_id)
    if event.type == "analytics":
        return ROOM_ANALYTICS
    raise UnknownEvent(f"Unknown subscription type: {event.type[:64]}")


class ClientEventRouter:
    """
    Routes decoded client events to their handlers.

    Usage:
        router = ClientEventRouter(manager, ArticleRepository())
        result = await router.handle_frame(session, raw_text)
    """

    def __init__(
        self,
        manager: "ConnectionManager",
        articles: "ArticleStore",
        snapshot_limit: int = WSConstants.SNAPSHOT_LIMIT,
    ) -> None:
        self._manager = manager
        self._articles = articles
        self._snapshot_limit = snapshot_limit
        self._handlers: dict[
            ClientEventKind, Callable[["Session", Any], Awaitable[None]]
        ] = {
            ClientEventKind.SUBSCRIBE: self._handle_subscribe,
            ClientEventKind.UNSUBSCRIBE: self._handle_unsubscribe,
            ClientEventKind.JOIN_ROOM: self._handle_join_room,
            ClientEventKind.LEAVE_ROOM: self._handle_leave_room,
            ClientEventKind.GET_STATS: self._handle_get_stats,
            ClientEventKind.PING: self._handle_ping,
            ClientEventKind.PONG: self._handle_pong,
        }

    async def handle_frame(self, session: "Session", raw: str | bytes) -> RoutingResult:
        """
        Decode and dispatch one inbound frame.

        UnknownEvent never escapes: it becomes an ``error`` frame for this
        session and the connection stays open.
        """
        event: ClientEvent | None = None
        try:
            event = parse_client_frame(raw)
            self._manager.metrics.increment("event", "client_events")
            await self._handlers[event.kind](session, event)
            return RoutingResult(kind=event.kind)
        except UnknownEvent as e:
            self._manager.metrics.increment("event", "unknown_client_events")
            logger.info(
                "Rejected client frame",
                user_id=session.user_id,
                session_id=session.session_id,
                error=e.message,
                frame=sanitize_log_data(raw),
            )
            await self._manager.send_to_session(session, ServerEvent.ERROR, e.message)
            return RoutingResult(kind=event.kind if event else None, error=e.message)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_subscribe(self, session: "Session", event: SubscribeEvent) -> None:
        room = subscription_room(session, event)
        await self._manager.join(session.user_id, room)
        await self._manager.send_to_session(session, ServerEvent.JOINED_ROOM, {"room": room})

        if event.type == "news":
            category = (event.filters.get("category") or "").strip() or None
            articles = await self._articles.latest(category, self._snapshot_limit)
            await self._manager.send_to_session(session, ServerEvent.NEWS_UPDATE, articles)

    async def _handle_unsubscribe(self, session: "Session", event: UnsubscribeEvent) -> None:
        room = subscription_room(session, event)
        await self._manager.leave(session.user_id, room)
        await self._manager.send_to_session(session, ServerEvent.LEFT_ROOM, {"room": room})

    async def _handle_join_room(self, session: "Session", event: JoinRoomEvent) -> None:
        room = _checked_room(event.room)
        await self._manager.join(session.user_id, room)
        await self._manager.send_to_session(session, ServerEvent.JOINED_ROOM, {"room": room})

    async def _handle_leave_room(self, session: "Session", event: LeaveRoomEvent) -> None:
        room = _checked_room(event.room)
        await self._manager.leave(session.user_id, room)
        await self._manager.send_to_session(session, ServerEvent.LEFT_ROOM, {"room": room})

    async def _handle_get_stats(self, session: "Session", event: Any) -> None:
        stats = await self._manager.get_stats(session.user_id)
        await self._manager.send_to_session(session, ServerEvent.STATS, stats)

    async def _handle_ping(self, session: "Session", event: Any) -> None:
        await self._manager.send_to_session(
            session, ServerEvent.PONG, {"timestamp": int(time.time() * 1000)}
        )

    async def _handle_pong(self, session: "Session", event: Any) -> None:
        # Liveness is recorded by the endpoint for every inbound frame
        session.mark_alive()
