"""
Repository for user default rooms.

On connect, every user joins ``tier:<tier>`` and one ``news:<category>``
room per preferred category. The lookup runs in a worker thread with a
timeout and never happens while the registry lock is held; on timeout or
error the user simply starts with its personal room only.

Results are cached with a TTL to keep reconnect storms off the database.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import select

from shared.config.settings import settings
from shared.config.logging import get_logger
from news_gateway.components.core.constants import news_room, tier_room

logger = get_logger(__name__)


class PreferenceStore(Protocol):
    """Given a user identity, return the rooms it joins on connect."""

    async def get_default_rooms(self, user_id: str) -> list[str]:
        ...


# =============================================================================
# Cache Implementation
# =============================================================================


@dataclass
class CacheEntry:
    """Single cache entry with value and expiration time."""

    value: list[str]
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class RoomCache:
    """
    Thread-safe TTL cache of default rooms keyed by user identity.

    Expired entries are purged when the cache reaches 80% of max_size; the
    oldest entry is evicted when it is still full afterwards.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_size: int = 5000,
        cleanup_threshold: float = 0.8,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._cleanup_threshold = cleanup_threshold
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> list[str] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired():
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.value)

    def set(self, key: str, value: list[str]) -> None:
        with self._lock:
            if len(self._entries) >= self._max_size * self._cleanup_threshold:
                self._cleanup_expired()
            if len(self._entries) >= self._max_size:
                self._evict_oldest()
            self._entries[key] = CacheEntry(
                value=list(value), expires_at=time.time() + self._ttl
            )

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def _cleanup_expired(self) -> int:
        """Remove expired entries (must hold lock)."""
        now = time.time()
        expired = [k for k, v in self._entries.items() if v.expires_at < now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _evict_oldest(self) -> None:
        """Evict oldest entry (must hold lock)."""
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest_key]

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": round(self._hits / total, 3) if total else 0.0,
            }


# =============================================================================
# Repository
# =============================================================================


def rooms_from_user_record(tier: str | None, categories: Any) -> list[str]:
    """Translate a user row into its default rooms, without duplicates."""
    rooms = [tier_room(tier)]
    if isinstance(categories, (list, tuple)):
        for category in categories:
            if isinstance(category, str) and category.strip():
                room = news_room(category.strip())
                if room not in rooms:
                    rooms.append(room)
    return rooms


class PreferenceRepository:
    """
    SQL-backed PreferenceStore.

    Usage:
        repo = PreferenceRepository()
        rooms = await repo.get_default_rooms("42")
    """

    def __init__(
        self,
        timeout: float | None = None,
        cache_ttl: float | None = None,
        cache_max_size: int | None = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.preference_lookup_timeout
        self._cache = RoomCache(
            ttl_seconds=cache_ttl if cache_ttl is not None else settings.preference_cache_ttl,
            max_size=cache_max_size or settings.preference_cache_max_size,
        )
        self._lookup_success = 0
        self._lookup_timeouts = 0
        self._lookup_errors = 0

    @property
    def cache(self) -> RoomCache:
        return self._cache

    async def get_default_rooms(self, user_id: str, skip_cache: bool = False) -> list[str]:
        """
        Rooms the user joins on connect, besides ``user:<id>``.

        Returns:
            The tier room and one news room per preferred category; empty if
            the user is unknown, on timeout, or on database error.
        """
        if not skip_cache:
            cached = self._cache.get(user_id)
            if cached is not None:
                return cached

        try:
            rooms = await asyncio.wait_for(
                asyncio.to_thread(self._lookup_sync, user_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._lookup_timeouts += 1
            logger.error(
                "Preference lookup timeout - falling back to personal room only",
                user_id=user_id,
                timeout=self._timeout,
            )
            return []
        except Exception as e:
            self._lookup_errors += 1
            logger.error(
                "Error fetching user preferences - falling back to personal room only",
                user_id=user_id,
                error=str(e),
            )
            return []

        self._lookup_success += 1
        self._cache.set(user_id, rooms)
        return rooms

    def _lookup_sync(self, user_id: str) -> list[str]:
        from shared.infrastructure.db import get_db_context
        from shared.infrastructure.models import User

        try:
            numeric_id = int(user_id)
        except (TypeError, ValueError):
            # Identities that are not platform ids have no stored preferences
            return []

        with get_db_context() as db:
            row = db.execute(
                select(User.tier, User.preferred_categories).where(User.id == numeric_id)
            ).first()

        if row is None:
            return []
        return rooms_from_user_record(row.tier, row.preferred_categories)

    def invalidate(self, user_id: str) -> None:
        self._cache.invalidate(user_id)

    def get_stats(self) -> dict[str, Any]:
        return {
            "timeout": self._timeout,
            "cache": self._cache.get_stats(),
            "lookups": {
                "success": self._lookup_success,
                "timeouts": self._lookup_timeouts,
                "errors": self._lookup_errors,
            },
        }

    def clear_cache(self) -> int:
        count = self._cache.clear()
        logger.info("Preference cache cleared", entries_cleared=count)
        return count
