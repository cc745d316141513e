"""
Channel routing table for the bus bridge.

Each bus channel maps to the client event name, a target selector and a
payload decoder. Adding a channel means adding a row here; the bridge
itself holds no per-channel logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from shared.utils.exceptions import BridgeDecodeError
from news_gateway.components.core.constants import (
    ROOM_NEWS_ALL,
    BusChannel,
    ServerEvent,
    article_room,
    news_room,
)
from news_gateway.components.events.types import Target


@dataclass(frozen=True, slots=True)
class ChannelRoute:
    """
    How one bus channel becomes deliveries.

    Attributes:
        event: Event name of the outbound frame.
        targets: Payload -> recipients. Raises BridgeDecodeError when the
            payload lacks the routing field.
        decode: Payload -> frame data.
    """

    event: str
    targets: Callable[[dict[str, Any]], list[Target]]
    decode: Callable[[dict[str, Any]], Any] = lambda payload: payload


def _required_key(payload: dict[str, Any], *names: str) -> str:
    for name in names:
        value = payload.get(name)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, str)) and str(value).strip():
            return str(value).strip()
    raise BridgeDecodeError(f"Payload is missing '{names[0]}'")


def _everyone(payload: dict[str, Any]) -> list[Target]:
    return [Target.everyone()]


def _news_targets(payload: dict[str, Any]) -> list[Target]:
    targets = [Target.room(ROOM_NEWS_ALL)]
    category = payload.get("category")
    if isinstance(category, str) and category.strip():
        room = news_room(category.strip())
        if room != ROOM_NEWS_ALL:
            targets.append(Target.room(room))
    return targets


def _article_targets(payload: dict[str, Any]) -> list[Target]:
    return [Target.room(article_room(_required_key(payload, "articleId", "article_id")))]


def _user_targets(payload: dict[str, Any]) -> list[Target]:
    return [Target.user(_required_key(payload, "userId", "user_id"))]


def _notification_body(payload: dict[str, Any]) -> Any:
    if "notification" not in payload:
        raise BridgeDecodeError("Payload is missing 'notification'")
    return payload["notification"]


DEFAULT_ROUTES: Mapping[str, ChannelRoute] = {
    BusChannel.NEWS_NEW: ChannelRoute(ServerEvent.NEW_ARTICLE, _news_targets),
    BusChannel.NEWS_UPDATE: ChannelRoute(ServerEvent.ARTICLE_UPDATED, _everyone),
    BusChannel.REACTIONS_UPDATE: ChannelRoute(ServerEvent.REACTION_UPDATE, _article_targets),
    BusChannel.USER_NOTIFICATION: ChannelRoute(
        ServerEvent.NOTIFICATION, _user_targets, _notification_body
    ),
    BusChannel.SYSTEM_BROADCAST: ChannelRoute(ServerEvent.SYSTEM_MESSAGE, _everyone),
}
