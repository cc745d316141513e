"""
Bus Bridge.

Pure translation from bus messages to deliveries, driven by the channel
table in ``routes``. Malformed payloads and unknown channels are logged and
dropped; nothing raised here ever reaches the subscription loop.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, TYPE_CHECKING

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import BridgeDecodeError
from news_gateway.components.bridge.routes import DEFAULT_ROUTES, ChannelRoute
from news_gateway.components.core.context import sanitize_log_data
from news_gateway.components.events.types import Delivery

if TYPE_CHECKING:
    from news_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class BusBridge:
    """
    Translates bus messages into deliveries and hands them to the manager.

    Usage:
        bridge = BusBridge(manager)
        await bridge.handle_message("news:new", '{"id": 1, "category": "sports"}')
    """

    def __init__(
        self,
        manager: "ConnectionManager",
        routes: Mapping[str, ChannelRoute] | None = None,
        max_message_size: int | None = None,
        channels: Iterable[str] | None = None,
    ) -> None:
        """
        Args:
            manager: Receives the deliveries.
            routes: Channel table, DEFAULT_ROUTES when omitted.
            max_message_size: Largest accepted payload in bytes.
            channels: Channels to bridge, BUS_CHANNELS when omitted. Names
                without a route are logged and ignored.
        """
        self._manager = manager
        table = routes if routes is not None else DEFAULT_ROUTES
        enabled = list(channels if channels is not None else settings.bus_channels)

        unknown = [name for name in enabled if name not in table]
        if unknown:
            logger.warning("Ignoring bus channels without a route", channels=unknown)

        self._routes = {name: table[name] for name in enabled if name in table}
        self._max_message_size = max_message_size or settings.ws_max_message_size

    @property
    def channels(self) -> list[str]:
        return list(self._routes)

    def translate(self, channel: str, raw: str | bytes) -> list[Delivery]:
        """
        Decode one bus message.

        Raises:
            BridgeDecodeError: Unknown channel, oversized or undecodable
                payload, non-object JSON, or missing routing field.
        """
        route = self._routes.get(channel)
        if route is None:
            raise BridgeDecodeError("Unknown channel", channel=channel)

        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        if size > self._max_message_size:
            raise BridgeDecodeError(f"Payload exceeds {self._max_message_size} bytes", channel=channel)

        try:
            payload: Any = json.loads(raw)
        except (ValueError, TypeError) as e:
            raise BridgeDecodeError(f"Invalid JSON: {e}", channel=channel)

        if not isinstance(payload, dict):
            raise BridgeDecodeError("Payload must be a JSON object", channel=channel)

        try:
            targets = route.targets(payload)
            data = route.decode(payload)
        except BridgeDecodeError as e:
            e.channel = channel
            raise
        except ValueError as e:
            raise BridgeDecodeError(str(e), channel=channel)

        return [Delivery(route.event, data, target) for target in targets]

    async def handle_message(self, channel: str, raw: str | bytes) -> int:
        """
        Translate and deliver one bus message.

        Returns:
            Number of frames written; 0 when the message was dropped.
        """
        try:
            deliveries = self.translate(channel, raw)
        except BridgeDecodeError as e:
            self._manager.metrics.increment("event", "bus_dropped")
            logger.warning(
                "Dropped bus message",
                channel=channel,
                error=e.message,
                payload=sanitize_log_data(raw),
            )
            return 0

        self._manager.metrics.increment("event", "bus_processed")
        sent = await self._manager.deliver_many(deliveries)
        logger.debug(
            "Bus message delivered",
            channel=channel,
            targets=[str(d.target) for d in deliveries],
            sent=sent,
        )
        return sent
