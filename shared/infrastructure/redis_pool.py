"""
Shared async Redis client.

The bus subscribers and the detailed health check all talk to Redis through
one lazily created client per process. Each subscriber opens its own pub/sub
connection from the client's pool.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import redis.asyncio as redis

from shared.config.logging import get_logger
from shared.config.settings import REDIS_URL, settings

logger = get_logger(__name__)

_client: redis.Redis | None = None
_client_lock: asyncio.Lock | None = None


def _create_client() -> redis.Redis:
    client = redis.from_url(
        REDIS_URL,
        decode_responses=True,
        max_connections=settings.redis_pool_max_connections,
        socket_connect_timeout=settings.redis_socket_timeout,
        health_check_interval=30,
    )
    logger.info(
        "Redis client created",
        max_connections=settings.redis_pool_max_connections,
        connect_timeout=settings.redis_socket_timeout,
    )
    return client


async def get_redis_pool() -> redis.Redis:
    """Return the process-wide client, creating it on first use."""
    global _client, _client_lock
    if _client is None:
        # Created inside the running loop; the lifespan loop owns it
        if _client_lock is None:
            _client_lock = asyncio.Lock()
        async with _client_lock:
            if _client is None:
                _client = _create_client()
    return _client


async def close_redis_pool() -> None:
    """Drop the client. A no-op when Redis was never used."""
    global _client, _client_lock
    client, _client, _client_lock = _client, None, None
    if client is None:
        return
    try:
        await client.aclose()
    except (redis.RedisError, OSError) as e:
        logger.warning("Error closing Redis client", error=str(e))


async def check_redis_health() -> dict[str, Any]:
    """PING Redis within the socket timeout."""
    started = time.perf_counter()
    try:
        client = await get_redis_pool()
        await asyncio.wait_for(client.ping(), timeout=settings.redis_socket_timeout)
    except (redis.RedisError, OSError, asyncio.TimeoutError) as e:
        logger.warning("Redis health check failed", error=str(e) or type(e).__name__)
        return {"status": "unhealthy", "error": type(e).__name__}
    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
