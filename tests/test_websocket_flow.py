"""
End-to-end WebSocket tests through the FastAPI TestClient.
"""

import json
import time

import pytest
from starlette.websockets import WebSocketDisconnect

from shared.infrastructure.models import User


def _eventually(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _stats(ws):
    ws.send_text(json.dumps({"event": "get_stats"}))
    frame = ws.receive_json()
    assert frame["event"] == "stats"
    return frame["data"]


class TestConnect:
    """Authenticated connection lifecycle."""

    def test_connected_frame_and_personal_room(self, client, token_for):
        manager = client.app.state.manager

        with client.websocket_connect(f"/ws?token={token_for(42)}") as ws:
            hello = ws.receive_json()
            assert hello["event"] == "connected"
            assert hello["data"]["userId"] == "42"
            assert hello["data"]["server"] == "zone-news-ws"
            assert isinstance(hello["data"]["timestamp"], int)

            assert "user:42" in _stats(ws)["userRooms"]
            assert manager.registry.user_count == 1

        assert _eventually(lambda: manager.registry.user_count == 0)
        assert manager.registry.room_count == 0

    def test_bearer_header_credential(self, client, token_for):
        headers = {"Authorization": f"Bearer {token_for('abc')}"}
        with client.websocket_connect("/ws", headers=headers) as ws:
            assert ws.receive_json()["data"]["userId"] == "abc"

    def test_preferences_join_default_rooms(self, client, db_session, token_for):
        db_session.add(User(id=42, tier="premium", preferred_categories=["sports"]))
        db_session.commit()

        with client.websocket_connect(f"/ws?token={token_for(42)}") as ws:
            ws.receive_json()
            rooms = _stats(ws)["userRooms"]

        assert rooms == ["news:sports", "tier:premium", "user:42"]

    def test_two_sessions_same_user(self, client, token_for):
        manager = client.app.state.manager
        token = token_for(42)

        with client.websocket_connect(f"/ws?token={token}") as first:
            first.receive_json()
            with client.websocket_connect(f"/ws?token={token}") as second:
                second.receive_json()
                assert manager.registry.session_count == 2
                assert manager.registry.user_count == 1
            assert _eventually(lambda: manager.registry.session_count == 1)
            assert "user:42" in _stats(first)["userRooms"]


class TestAuthFailure:
    """Refused connections get an error frame and close 1008."""

    def test_missing_token(self, client):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"event": "error", "data": "Authenticated required"}
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
            assert exc.value.code == 1008

        assert client.app.state.manager.registry.session_count == 0

    def test_invalid_token(self, client):
        with client.websocket_connect("/ws?token=garbage") as ws:
            assert ws.receive_json() == {"event": "error", "data": "Invalid token"}
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
            assert exc.value.code == 1008

        manager = client.app.state.manager
        assert manager.registry.session_count == 0
        assert manager.metrics.get("connection", "rejected_auth") == 1


class TestMessages:
    """Client events over a live connection."""

    def test_subscribe_news(self, client, token_for):
        with client.websocket_connect(f"/ws?token={token_for(7)}") as ws:
            ws.receive_json()
            ws.send_text(
                json.dumps(
                    {"event": "subscribe", "data": {"type": "news", "filters": {"category": "tech"}}}
                )
            )
            assert ws.receive_json() == {"event": "joined_room", "data": {"room": "news:tech"}}
            assert ws.receive_json() == {"event": "news_update", "data": []}

    def test_unknown_event_keeps_connection(self, client, token_for):
        with client.websocket_connect(f"/ws?token={token_for(7)}") as ws:
            ws.receive_json()
            ws.send_text('{"event": "dance"}')
            assert ws.receive_json() == {"event": "error", "data": "Unknown event: dance"}

            ws.send_text('{"event": "ping"}')
            assert ws.receive_json()["event"] == "pong"

    def test_oversized_frame_closes_1009(self, client, token_for):
        with client.websocket_connect(f"/ws?token={token_for(7)}") as ws:
            ws.receive_json()
            ws.send_text("x" * (64 * 1024 + 1))
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
            assert exc.value.code == 1009


class TestShutdown:
    """Connections during shutdown."""

    def test_new_connection_refused_after_shutdown(self, client, token_for):
        manager = client.app.state.manager
        client.portal.call(manager.shutdown)

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws?token={token_for(7)}"):
                pass
        assert exc.value.code == 1001
        assert manager.metrics.get("connection", "rejected_shutdown") == 1

    def test_open_sessions_are_notified(self, client, token_for):
        manager = client.app.state.manager

        with client.websocket_connect(f"/ws?token={token_for(7)}") as ws:
            ws.receive_json()
            client.portal.call(manager.shutdown)

            assert ws.receive_json() == {
                "event": "server_shutdown",
                "data": "Server is shutting down",
            }
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
            assert exc.value.code == 1001
