"""
Tests for the ConnectionManager facade.

Tests verify:
- Room, user and broadcast targeting
- Duplicate suppression across targets of one fan-out
- Shutdown notifies and closes every session
"""

import pytest

from news_gateway.components.core.constants import WSCloseCode
from news_gateway.components.events.types import Delivery, Target


class TestConnect:
    """Tests for connect / disconnect."""

    @pytest.mark.asyncio
    async def test_connect_joins_personal_room(self, manager, make_session):
        session = make_session("42")

        await manager.connect(session)

        assert await manager.registry.members_of("user:42") == {"42"}
        assert session.rooms == {"user:42"}
        assert manager.metrics.get("connection", "accepted") == 1

    @pytest.mark.asyncio
    async def test_disconnect_removes_user_entirely(self, manager, make_session):
        session = make_session("42")
        await manager.connect(session)
        await manager.join("42", "news:tech")

        await manager.disconnect(session)

        assert await manager.registry.sessions_for("42") == set()
        assert await manager.registry.rooms_for("42") == set()
        assert manager.registry.room_count == 0

    @pytest.mark.asyncio
    async def test_connect_refused_while_shutting_down(self, manager, make_session):
        await manager.shutdown()

        with pytest.raises(ConnectionError):
            await manager.connect(make_session("42"))

    @pytest.mark.asyncio
    async def test_shutdown_during_registration_refuses_session(
        self, manager, make_session, monkeypatch
    ):
        register = manager.registry.register

        async def register_after_shutdown(user_id, session):
            # Shutdown snapshots the registry before this session lands in it
            await manager.shutdown()
            return await register(user_id, session)

        monkeypatch.setattr(manager.registry, "register", register_after_shutdown)

        with pytest.raises(ConnectionError):
            await manager.connect(make_session("42"))

        assert manager.registry.session_count == 0
        assert manager.registry.room_count == 0
        assert manager.metrics.get("connection", "accepted") == 0


class TestTargeting:
    """Deliveries reach exactly the sessions their target selects."""

    @pytest.mark.asyncio
    async def test_room_delivery_reaches_members_only(self, manager, make_session):
        a, b, c = make_session("A"), make_session("B"), make_session("C")
        for s in (a, b, c):
            await manager.connect(s)
        await manager.join("A", "news:sports")
        await manager.join("B", "news:sports")

        sent = await manager.send_to_room("news:sports", "new_article", {"id": 1})

        assert sent == 2
        assert a.websocket.events() == ["new_article"]
        assert b.websocket.events() == ["new_article"]
        assert c.websocket.sent == []

    @pytest.mark.asyncio
    async def test_user_delivery_reaches_every_session(self, manager, make_session):
        phone, laptop, other = make_session("42"), make_session("42"), make_session("7")
        for s in (phone, laptop, other):
            await manager.connect(s)

        sent = await manager.send_to_user(42, "notification", {"text": "hi"})

        assert sent == 2
        assert other.websocket.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_reaches_everyone(self, manager, make_session):
        sessions = [make_session(str(i)) for i in range(5)]
        for s in sessions:
            await manager.connect(s)

        assert await manager.broadcast("system_message", "maintenance") == 5

    @pytest.mark.asyncio
    async def test_empty_target_is_noop(self, manager):
        sent = await manager.send_to_room("news:nobody", "new_article", {})

        assert sent == 0
        assert manager.metrics.get("delivery", "no_recipients") == 1

    @pytest.mark.asyncio
    async def test_frame_is_encoded_once_and_identical(self, manager, make_session):
        a, b = make_session("A"), make_session("B")
        await manager.connect(a)
        await manager.connect(b)

        await manager.broadcast("system_message", {"text": "hello"})

        assert a.websocket.sent == b.websocket.sent
        assert a.websocket.frames()[0] == {
            "event": "system_message",
            "data": {"text": "hello"},
        }

    @pytest.mark.asyncio
    async def test_overlapping_targets_deliver_once(self, manager, make_session):
        session = make_session("A")
        await manager.connect(session)
        await manager.join("A", "news:all")
        await manager.join("A", "news:sports")

        sent = await manager.deliver_many(
            [
                Delivery("new_article", {"id": 9}, Target.room("news:all")),
                Delivery("new_article", {"id": 9}, Target.room("news:sports")),
            ]
        )

        assert sent == 1
        assert session.websocket.events() == ["new_article"]


class TestShutdown:
    """Tests for graceful shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_notifies_and_closes(self, manager, make_session):
        sessions = [make_session("1"), make_session("2"), make_session("2")]
        for s in sessions:
            await manager.connect(s)

        closed = await manager.shutdown()

        assert closed == 3
        assert manager.is_shutting_down is True
        assert manager.registry.session_count == 0
        assert manager.registry.room_count == 0
        for s in sessions:
            assert s.websocket.frames()[0] == {
                "event": "server_shutdown",
                "data": "Server is shutting down",
            }
            assert s.websocket.close_code == WSCloseCode.GOING_AWAY

    @pytest.mark.asyncio
    async def test_shutdown_without_sessions(self, manager):
        assert await manager.shutdown() == 0


class TestStats:
    """Tests for the stats payloads."""

    @pytest.mark.asyncio
    async def test_get_stats_payload(self, manager, make_session):
        await manager.connect(make_session("42"))
        await manager.join("42", "news:tech")

        stats = await manager.get_stats("42")

        assert stats["totalConnections"] == 1
        assert stats["totalUsers"] == 1
        assert stats["totalRooms"] == 2
        assert stats["userRooms"] == ["news:tech", "user:42"]
        assert "serverTime" in stats
        assert stats["uptime"] >= 0

    def test_health_summary(self, manager):
        health = manager.get_health()

        assert health["connections"] == 0
        assert health["users"] == 0
        assert health["rooms"] == 0
        assert health["uptime"] >= 0
