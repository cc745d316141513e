"""
Read-side ORM models for the preference and article stores.

The tables are owned by the main application; the gateway only queries them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class User(Base):
    """
    A subscriber of the news service.

    ``id`` is the messaging-platform identity carried in client tokens.
    ``preferred_categories`` holds the category tags the user follows; each
    maps to a ``news:<category>`` room joined automatically on connect.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tier: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    preferred_categories: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)


class NewsArticle(Base):
    """A published article. Used for subscription snapshots."""

    __tablename__ = "news_articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "url": self.url,
            "summary": self.summary,
            "published_date": self.published_date.isoformat() if self.published_date else None,
        }
