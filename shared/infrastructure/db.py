"""
Database configuration and session management.
Uses SQLAlchemy 2.0 patterns.

The gateway only reads from the store (user preferences and the latest
articles), so the engine is created lazily on first use. Tests swap it
with configure_engine().
"""

from __future__ import annotations

import os
import threading
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config.settings import DATABASE_URL

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_engine_lock = threading.Lock()


def _calculate_pool_size() -> int:
    """(2 * CPU cores) + 1, capped at 20."""
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def _create_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=_calculate_pool_size(),
        max_overflow=15,
        pool_timeout=30,
        pool_recycle=1800,
        echo=False,
    )


def get_engine() -> Engine:
    """Get or create the engine singleton."""
    global _engine, _session_factory
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = _create_engine(DATABASE_URL)
                _session_factory = sessionmaker(
                    bind=_engine,
                    autoflush=False,
                    autocommit=False,
                )
    return _engine


def configure_engine(engine: Engine) -> None:
    """Replace the engine (used by tests and embedding applications)."""
    global _engine, _session_factory
    with _engine_lock:
        _engine = engine
        _session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def dispose_engine() -> None:
    """Dispose the pooled connections on shutdown."""
    global _engine, _session_factory
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            db.execute(select(User)).scalars().all()
    """
    get_engine()
    assert _session_factory is not None
    db = _session_factory()
    try:
        yield db
    finally:
        db.close()
