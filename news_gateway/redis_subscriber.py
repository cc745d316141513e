"""
Redis pub/sub subscriber for the gateway.

One subscriber task per bus channel. Each task reads its channel and hands
raw payloads to the bus bridge. Connection errors trigger a reconnect with
exponential backoff and jitter; the attempt counter resets after every
successful subscribe.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

import redis.exceptions
from redis.asyncio import Redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.redis_pool import get_redis_pool
from news_gateway.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_redis_retry_config,
)

logger = get_logger(__name__)

MessageHandler = Callable[[str, Any], Awaitable[Any]]
ClientFactory = Callable[[], Awaitable[Redis]]

_retry_config = create_redis_retry_config(
    max_delay=settings.redis_max_reconnect_delay,
    max_attempts=settings.redis_max_reconnect_attempts,
)


@dataclass
class SubscriberStatus:
    state: str = "starting"
    received: int = 0
    handler_errors: int = 0
    reconnects: int = 0
    last_error: str | None = None


_subscriber_status: dict[str, SubscriberStatus] = {}


def get_subscriber_metrics() -> dict[str, dict[str, Any]]:
    """Per-channel subscriber state for the detailed health check."""
    return {channel: asdict(status) for channel, status in _subscriber_status.items()}


def reset_subscriber_metrics() -> None:
    _subscriber_status.clear()


async def _close_pubsub(pubsub: Any, channel: str) -> None:
    if pubsub is None:
        return
    try:
        await asyncio.wait_for(
            pubsub.unsubscribe(channel), timeout=settings.redis_pubsub_cleanup_timeout
        )
        await asyncio.wait_for(pubsub.aclose(), timeout=settings.redis_pubsub_cleanup_timeout)
    except Exception as e:
        logger.debug("Error closing pubsub", channel=channel, error=str(e))


async def run_channel_subscriber(
    channel: str,
    on_message: MessageHandler,
    get_client: ClientFactory = get_redis_pool,
    retry_config: RetryConfig | None = None,
    poll_timeout: float = 1.0,
) -> None:
    """
    Subscribe to one channel and dispatch its messages until cancelled.

    Args:
        channel: Bus channel name.
        on_message: Async callback receiving (channel, raw payload).
        get_client: Returns the Redis client to subscribe with.
        retry_config: Backoff settings for reconnection.
        poll_timeout: Seconds to wait for a message per poll.

    Raises:
        RuntimeError: If reconnection keeps failing past max_attempts.
    """
    config = retry_config or _retry_config
    status = _subscriber_status.setdefault(channel, SubscriberStatus())
    pubsub = None
    failures = 0

    try:
        while True:
            try:
                if pubsub is None:
                    client = await get_client()
                    pubsub = client.pubsub()
                    await pubsub.subscribe(channel)
                    failures = 0
                    status.state = "running"
                    logger.info("Subscribed to bus channel", channel=channel)

                msg = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=poll_timeout
                )
                if msg is None or msg.get("type") != "message":
                    continue

                status.received += 1
                try:
                    await on_message(channel, msg.get("data"))
                except Exception as e:
                    status.handler_errors += 1
                    logger.error(
                        "Bus message handler failed",
                        channel=channel,
                        error=str(e),
                        exc_info=True,
                    )

            except redis.exceptions.TimeoutError:
                # Normal for pubsub - keep listening
                continue

            except (redis.exceptions.ConnectionError, OSError) as e:
                failures += 1
                status.reconnects += 1
                status.state = "reconnecting"
                status.last_error = str(e)
                await _close_pubsub(pubsub, channel)
                pubsub = None

                if failures > config.max_attempts:
                    status.state = "failed"
                    logger.error(
                        "Max reconnection attempts exceeded, subscriber giving up",
                        channel=channel,
                        attempts=failures,
                    )
                    raise RuntimeError(
                        f"Subscriber for {channel} failed after {failures} reconnection attempts"
                    )

                delay = calculate_delay_with_jitter(failures - 1, config)
                logger.warning(
                    "Redis connection error, reconnecting with jitter",
                    channel=channel,
                    error=str(e),
                    attempt=failures,
                    max_attempts=config.max_attempts,
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)

    except asyncio.CancelledError:
        status.state = "stopped"
        logger.info("Bus subscriber cancelled", channel=channel, received=status.received)
        raise
    finally:
        await _close_pubsub(pubsub, channel)
