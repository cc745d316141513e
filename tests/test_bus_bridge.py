"""
Tests for the bus bridge.

Tests verify:
- Each channel maps to its event and target
- Category routing for new articles
- Malformed payloads are dropped without raising
"""

import json

import pytest

from shared.config.settings import settings
from shared.utils.exceptions import BridgeDecodeError
from news_gateway.components.bridge.bridge import BusBridge
from news_gateway.components.events.types import Target


class TestTranslate:
    """Tests for the pure translation step."""

    def test_news_new_targets_all_and_category(self, manager):
        bridge = BusBridge(manager)

        deliveries = bridge.translate("news:new", '{"id": 1, "category": "sports"}')

        assert [d.target for d in deliveries] == [
            Target.room("news:all"),
            Target.room("news:sports"),
        ]
        assert all(d.event == "new_article" for d in deliveries)

    def test_news_new_without_category(self, manager):
        deliveries = BusBridge(manager).translate("news:new", '{"id": 1}')
        assert [d.target for d in deliveries] == [Target.room("news:all")]

    def test_article_update_goes_to_everyone(self, manager):
        (delivery,) = BusBridge(manager).translate("news:update", '{"id": 3}')
        assert delivery.event == "article_updated"
        assert delivery.target == Target.everyone()

    def test_reaction_update(self, manager):
        (delivery,) = BusBridge(manager).translate(
            "reactions:update", '{"articleId": 12, "likes": 4}'
        )
        assert delivery.event == "reaction_update"
        assert delivery.target == Target.room("article:12")

    def test_user_notification_unwraps_body(self, manager):
        (delivery,) = BusBridge(manager).translate(
            "user:notification", '{"userId": 42, "notification": {"text": "hi"}}'
        )
        assert delivery.target == Target.user("42")
        assert delivery.data == {"text": "hi"}

    def test_system_broadcast(self, manager):
        (delivery,) = BusBridge(manager).translate("system:broadcast", '{"text": "restart"}')
        assert delivery.event == "system_message"
        assert delivery.target == Target.everyone()

    @pytest.mark.parametrize(
        "channel,raw",
        [
            ("news:new", "not json"),
            ("news:new", "[1, 2, 3]"),
            ("reactions:update", '{"likes": 4}'),
            ("user:notification", '{"notification": {}}'),
            ("user:notification", '{"userId": 42}'),
            ("unknown:channel", "{}"),
        ],
    )
    def test_malformed_payloads_raise(self, manager, channel, raw):
        with pytest.raises(BridgeDecodeError) as exc:
            BusBridge(manager).translate(channel, raw)
        assert exc.value.channel == channel

    def test_oversized_payload(self, manager):
        bridge = BusBridge(manager, max_message_size=32)
        with pytest.raises(BridgeDecodeError):
            bridge.translate("system:broadcast", json.dumps({"text": "x" * 100}))

    def test_channels_follow_settings(self, manager, monkeypatch):
        monkeypatch.setattr(settings, "bus_channels", ["news:new", "weather:alerts"])
        bridge = BusBridge(manager)

        assert bridge.channels == ["news:new"]
        with pytest.raises(BridgeDecodeError):
            bridge.translate("system:broadcast", '{"text": "restart"}')

    def test_explicit_channels(self, manager):
        bridge = BusBridge(manager, channels=["user:notification", "news:update"])
        assert bridge.channels == ["user:notification", "news:update"]

    def test_oversized_payload_counts_bytes(self, manager):
        bridge = BusBridge(manager, max_message_size=32)
        # 29 characters, 49 bytes once encoded
        raw = json.dumps({"t": "ñ" * 20}, ensure_ascii=False)
        assert len(raw) < 32
        with pytest.raises(BridgeDecodeError):
            bridge.translate("system:broadcast", raw)


class TestHandleMessage:
    """Tests for translate + deliver."""

    @pytest.mark.asyncio
    async def test_category_routing(self, manager, make_session):
        sports, politics = make_session("1"), make_session("2")
        await manager.connect(sports)
        await manager.connect(politics)
        await manager.join("1", "news:sports")
        await manager.join("2", "news:politics")
        bridge = BusBridge(manager)

        sent = await bridge.handle_message("news:new", '{"id": 5, "category": "sports"}')

        assert sent == 1
        assert sports.websocket.frames() == [
            {"event": "new_article", "data": {"id": 5, "category": "sports"}}
        ]
        assert politics.websocket.sent == []

    @pytest.mark.asyncio
    async def test_news_all_member_in_category_gets_one_frame(self, manager, make_session):
        session = make_session("1")
        await manager.connect(session)
        await manager.join("1", "news:all")
        await manager.join("1", "news:sports")

        await BusBridge(manager).handle_message("news:new", '{"id": 5, "category": "sports"}')

        assert session.websocket.events() == ["new_article"]

    @pytest.mark.asyncio
    async def test_malformed_message_is_dropped(self, manager, make_session):
        session = make_session("1")
        await manager.connect(session)
        bridge = BusBridge(manager)

        assert await bridge.handle_message("system:broadcast", "{broken") == 0
        assert await bridge.handle_message("system:broadcast", '{"text": "ok"}') == 1

        assert session.websocket.events() == ["system_message"]
        assert manager.metrics.get("event", "bus_dropped") == 1
        assert manager.metrics.get("event", "bus_processed") == 1

    @pytest.mark.asyncio
    async def test_notification_reaches_user_only(self, manager, make_session):
        target, other = make_session("42"), make_session("7")
        await manager.connect(target)
        await manager.connect(other)

        await BusBridge(manager).handle_message(
            "user:notification", '{"userId": "42", "notification": {"title": "Welcome"}}'
        )

        assert target.websocket.frames() == [
            {"event": "notification", "data": {"title": "Welcome"}}
        ]
        assert other.websocket.sent == []

    def test_channels(self, manager):
        assert set(BusBridge(manager).channels) == {
            "news:new",
            "news:update",
            "reactions:update",
            "user:notification",
            "system:broadcast",
        }
