"""
WebSocket Gateway Constants.

Close codes, frame event names and operational defaults, with the
rationale for each value.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "ServerEvent",
    "BusChannel",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway (RFC 6455).
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or session evicted
    POLICY_VIOLATION = 1008  # Authentication failed
    MESSAGE_TOO_BIG = 1009  # Frame larger than ws_max_message_size


class WSConstants:
    """
    WebSocket Gateway operational constants.

    These are defaults used when settings are not available. At runtime the
    ConnectionManager and the endpoint read from ``shared.config.settings``,
    which can override them via environment variables.
    """

    # HEARTBEAT_INTERVAL: 30 seconds
    # A session that sends nothing between two probes is evicted, so a dead
    # connection is reclaimed within 60 seconds at worst.
    HEARTBEAT_INTERVAL: Final[float] = 30.0

    # SEND_TIMEOUT: 5 seconds
    # Upper bound on a single frame write. A slower client is treated as a
    # slow consumer: the frame is dropped and the session marked dead.
    SEND_TIMEOUT: Final[float] = 5.0

    # CLOSE_TIMEOUT: 2 seconds
    # Closing an already broken socket can hang; eviction must not.
    CLOSE_TIMEOUT: Final[float] = 2.0

    # BROADCAST_BATCH_SIZE: 50
    # Sessions written in parallel per gather() batch during fan-out.
    BROADCAST_BATCH_SIZE: Final[int] = 50

    # DB_LOOKUP_TIMEOUT: 2 seconds
    # Preference and snapshot lookups run in a worker thread. After the
    # timeout the session proceeds with only its personal room.
    DB_LOOKUP_TIMEOUT: Final[float] = 2.0

    # MAX_MESSAGE_SIZE: 64 KB
    # Client frames are small JSON commands; anything larger is abuse.
    MAX_MESSAGE_SIZE: Final[int] = 64 * 1024

    # MAX_ROOM_NAME_LENGTH: 128
    # Rooms are created on demand by clients; bound the key size.
    MAX_ROOM_NAME_LENGTH: Final[int] = 128

    # SNAPSHOT_LIMIT: 10
    # Articles pushed right after a news subscription.
    SNAPSHOT_LIMIT: Final[int] = 10

    # SHUTDOWN_NOTICE_TIMEOUT: 2 seconds
    # Shutdown is best effort; a stuck client must not delay it.
    SHUTDOWN_NOTICE_TIMEOUT: Final[float] = 2.0


class ServerEvent:
    """Event names of server -> client frames."""

    CONNECTED: Final[str] = "connected"
    JOINED_ROOM: Final[str] = "joined_room"
    LEFT_ROOM: Final[str] = "left_room"
    ERROR: Final[str] = "error"
    PING: Final[str] = "ping"
    PONG: Final[str] = "pong"
    STATS: Final[str] = "stats"
    NEWS_UPDATE: Final[str] = "news_update"
    NEW_ARTICLE: Final[str] = "new_article"
    ARTICLE_UPDATED: Final[str] = "article_updated"
    REACTION_UPDATE: Final[str] = "reaction_update"
    NOTIFICATION: Final[str] = "notification"
    SYSTEM_MESSAGE: Final[str] = "system_message"
    SERVER_SHUTDOWN: Final[str] = "server_shutdown"


class BusChannel:
    """Redis pub/sub channels published by the main application."""

    NEWS_NEW: Final[str] = "news:new"
    NEWS_UPDATE: Final[str] = "news:update"
    REACTIONS_UPDATE: Final[str] = "reactions:update"
    USER_NOTIFICATION: Final[str] = "user:notification"
    SYSTEM_BROADCAST: Final[str] = "system:broadcast"


# Room name prefixes
ROOM_USER_PREFIX: Final[str] = "user:"
ROOM_TIER_PREFIX: Final[str] = "tier:"
ROOM_NEWS_PREFIX: Final[str] = "news:"
ROOM_ARTICLE_PREFIX: Final[str] = "article:"
ROOM_ANALYTICS: Final[str] = "analytics"
ROOM_NEWS_ALL: Final[str] = "news:all"
DEFAULT_TIER: Final[str] = "free"

SHUTDOWN_MESSAGE: Final[str] = "Server is shutting down"


def user_room(user_id: str) -> str:
    return f"{ROOM_USER_PREFIX}{user_id}"


def news_room(category: str | None) -> str:
    return f"{ROOM_NEWS_PREFIX}{category or 'all'}"


def article_room(article_id: str | int) -> str:
    return f"{ROOM_ARTICLE_PREFIX}{article_id}"


def tier_room(tier: str | None) -> str:
    return f"{ROOM_TIER_PREFIX}{tier or DEFAULT_TIER}"
