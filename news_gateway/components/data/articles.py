"""
Repository for subscription snapshots.

A ``news`` subscription is answered with the latest articles of the
category before any live event, so the client has current state from the
moment it joins the room.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from sqlalchemy import select

from shared.config.settings import settings
from shared.config.logging import get_logger
from news_gateway.components.core.constants import WSConstants

logger = get_logger(__name__)


class ArticleStore(Protocol):
    async def latest(self, category: str | None, limit: int) -> list[dict[str, Any]]:
        ...


class ArticleRepository:
    """SQL-backed ArticleStore. Returns [] on timeout or error."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else settings.preference_lookup_timeout
        self._failures = 0

    async def latest(
        self,
        category: str | None = None,
        limit: int = WSConstants.SNAPSHOT_LIMIT,
    ) -> list[dict[str, Any]]:
        """Newest articles first, optionally restricted to one category."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._latest_sync, category, limit),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._failures += 1
            logger.error("Snapshot lookup timeout", category=category, timeout=self._timeout)
            return []
        except Exception as e:
            self._failures += 1
            logger.error("Error fetching snapshot", category=category, error=str(e))
            return []

    def _latest_sync(self, category: str | None, limit: int) -> list[dict[str, Any]]:
        from shared.infrastructure.db import get_db_context
        from shared.infrastructure.models import NewsArticle

        query = select(NewsArticle)
        if category:
            query = query.where(NewsArticle.category == category)
        query = query.order_by(
            NewsArticle.published_date.desc(), NewsArticle.id.desc()
        ).limit(limit)

        with get_db_context() as db:
            return [article.to_dict() for article in db.execute(query).scalars().all()]

    def get_stats(self) -> dict[str, int]:
        return {"failures": self._failures}
