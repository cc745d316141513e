"""
Pytest configuration and fixtures for gateway tests.
"""

import os

# Settings are read once at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-for-gateway-tests-0123456789")
os.environ.setdefault("INTERNAL_TOKEN", "test-internal-token")
os.environ.setdefault("BUS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from shared.infrastructure.db import configure_engine
from shared.infrastructure.models import Base
from shared.security.auth import sign_jwt
from news_gateway.connection_manager import ConnectionManager
from news_gateway.components.connection.registry import Session
from news_gateway.components.events.router import ClientEventRouter
from news_gateway.components.bridge.bridge import BusBridge


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
configure_engine(engine)


class FakeWebSocket:
    """
    Minimal stand-in for a connected Starlette WebSocket.

    Every frame written with send_text is kept in ``sent``.
    """

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.send_text = AsyncMock(side_effect=self._record)
        self.close = AsyncMock(side_effect=self._close)
        self.close_code: int | None = None

    async def _record(self, text: str) -> None:
        self.sent.append(text)

    async def _close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def frames(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.frames()]


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def make_session():
    """Factory for sessions backed by fresh FakeWebSockets."""

    def _make(user_id: str) -> Session:
        return Session(websocket=FakeWebSocket(), user_id=user_id)

    return _make


@pytest.fixture
def manager():
    return ConnectionManager(send_timeout=0.5, batch_size=10)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def token_for():
    """Sign a client token for a user id."""

    def _sign(user_id, **claims) -> str:
        return sign_jwt({"userId": user_id, **claims})

    return _sign


@pytest.fixture(scope="function")
def client(db_session):
    """
    Test client with a fresh ConnectionManager wired into app.state.
    """
    from news_gateway.main import app

    saved = {name: getattr(app.state, name) for name in ("manager", "client_router", "bus_bridge")}
    configure_engine(engine)

    fresh = ConnectionManager(send_timeout=1.0)
    app.state.manager = fresh
    app.state.client_router = ClientEventRouter(fresh, app.state.articles)
    app.state.bus_bridge = BusBridge(fresh)
    app.state.preferences.clear_cache()

    with TestClient(app) as test_client:
        yield test_client

    for name, value in saved.items():
        setattr(app.state, name, value)
    # The lifespan disposes the engine on exit
    configure_engine(engine)


@pytest.fixture
def internal_headers():
    return {"X-Internal-Token": os.environ["INTERNAL_TOKEN"]}
