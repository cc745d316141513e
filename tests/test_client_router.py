"""
Tests for the client event router.

Every reply goes to the originating session only, and a bad frame never
closes the connection.
"""

import json
from unittest.mock import AsyncMock

import pytest

from news_gateway.components.events.router import ClientEventRouter


@pytest.fixture
def articles():
    store = AsyncMock()
    store.latest.return_value = [{"id": 1, "title": "Derby tonight", "category": "sports"}]
    return store


class TestSubscriptions:
    """Subscribe / unsubscribe map to rooms."""

    @pytest.mark.asyncio
    async def test_news_subscription_joins_then_snapshots(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles, snapshot_limit=10)

        result = await router.handle_frame(
            session,
            '{"event": "subscribe", "data": {"type": "news", "filters": {"category": " sports "}}}',
        )

        assert result.ok
        assert "news:sports" in session.rooms
        frames = session.websocket.frames()
        assert frames[0] == {"event": "joined_room", "data": {"room": "news:sports"}}
        assert frames[1]["event"] == "news_update"
        assert frames[1]["data"][0]["title"] == "Derby tonight"
        articles.latest.assert_awaited_once_with("sports", 10)

    @pytest.mark.asyncio
    async def test_news_without_category_uses_all(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "subscribe", "data": {"type": "news"}}')

        assert "news:all" in session.rooms
        articles.latest.assert_awaited_once_with(None, 10)

    @pytest.mark.asyncio
    async def test_reaction_subscription_requires_article(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        ok = await router.handle_frame(
            session,
            '{"event": "subscribe", "data": {"type": "reactions", "filters": {"articleId": 7}}}',
        )
        bad = await router.handle_frame(
            session, '{"event": "subscribe", "data": {"type": "reactions"}}'
        )

        assert ok.ok and "article:7" in session.rooms
        assert not bad.ok
        assert session.websocket.frames()[-1]["event"] == "error"

    @pytest.mark.asyncio
    async def test_user_subscription_is_own_room(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(
            session,
            '{"event": "subscribe", "data": {"type": "user", "filters": {"userId": "1"}}}',
        )

        assert session.websocket.frames()[0]["data"] == {"room": "user:42"}
        assert "user:1" not in session.rooms

    @pytest.mark.asyncio
    async def test_unsubscribe_leaves_room(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "subscribe", "data": {"type": "analytics"}}')
        await router.handle_frame(session, '{"event": "unsubscribe", "data": {"type": "analytics"}}')

        assert "analytics" not in session.rooms
        assert session.websocket.frames()[-1] == {
            "event": "left_room",
            "data": {"room": "analytics"},
        }
        assert manager.registry.room_count == 1

    @pytest.mark.asyncio
    async def test_unknown_subscription_type(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        result = await router.handle_frame(
            session, '{"event": "subscribe", "data": {"type": "weather"}}'
        )

        assert result.error == "Unknown subscription type: weather"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filters",
        [
            {"type": "news", "filters": {"category": "x" * 5000}},
            {"type": "reactions", "filters": {"articleId": "9" * 5000}},
        ],
    )
    async def test_overlong_subscription_room_is_rejected(
        self, manager, articles, make_session, filters
    ):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        result = await router.handle_frame(
            session, json.dumps({"event": "subscribe", "data": filters})
        )

        assert not result.ok
        assert await manager.registry.rooms_for("42") == {"user:42"}
        assert session.websocket.events() == ["error"]
        articles.latest.assert_not_awaited()


class TestRooms:
    """join_room / leave_room."""

    @pytest.mark.asyncio
    async def test_join_and_leave(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "join_room", "data": {"room": "lobby"}}')
        assert await manager.registry.members_of("lobby") == {"42"}

        await router.handle_frame(session, '{"event": "leave_room", "data": {"room": "lobby"}}')
        assert await manager.registry.members_of("lobby") == set()
        assert session.websocket.events() == ["joined_room", "left_room"]

    @pytest.mark.asyncio
    async def test_overlong_room_is_rejected(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        result = await router.handle_frame(
            session, '{"event": "join_room", "data": {"room": "%s"}}' % ("r" * 500)
        )

        assert not result.ok
        assert manager.registry.room_count == 1


class TestMisc:
    """get_stats, ping, pong and errors."""

    @pytest.mark.asyncio
    async def test_get_stats(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "get_stats"}')

        frame = session.websocket.frames()[0]
        assert frame["event"] == "stats"
        assert frame["data"]["totalConnections"] == 1
        assert frame["data"]["userRooms"] == ["user:42"]

    @pytest.mark.asyncio
    async def test_ping_gets_pong(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "ping"}')

        frame = session.websocket.frames()[0]
        assert frame["event"] == "pong"
        assert isinstance(frame["data"]["timestamp"], int)

    @pytest.mark.asyncio
    async def test_pong_marks_alive(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        session.is_alive = False
        router = ClientEventRouter(manager, articles)

        await router.handle_frame(session, '{"event": "pong"}')

        assert session.is_alive is True
        assert session.websocket.sent == []

    @pytest.mark.asyncio
    async def test_unknown_event_is_session_local(self, manager, articles, make_session):
        session, other = make_session("42"), make_session("7")
        await manager.connect(session)
        await manager.connect(other)
        router = ClientEventRouter(manager, articles)

        result = await router.handle_frame(session, '{"event": "dance"}')

        assert result.error == "Unknown event: dance"
        assert session.websocket.frames() == [{"event": "error", "data": "Unknown event: dance"}]
        assert other.websocket.sent == []
        assert session.closed is False
        assert manager.metrics.get("event", "unknown_client_events") == 1

    @pytest.mark.asyncio
    async def test_garbage_frame(self, manager, articles, make_session):
        session = make_session("42")
        await manager.connect(session)
        router = ClientEventRouter(manager, articles)

        result = await router.handle_frame(session, "{{{")

        assert result.kind is None
        assert session.websocket.frames()[0]["data"] == "Invalid message format"
