"""Unit tests for websocket notification delivery"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from assetx.api.websocket import ConnectionManager, manager
from assetx.main import app


def fake_socket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    return websocket


class TestConnectionManager:
    """Tests for per-recipient routing"""

    @pytest.mark.asyncio
    async def test_recipient_only_receives_own_events(self):
        connections = ConnectionManager()
        buyer_socket, seller_socket = fake_socket(), fake_socket()
        await connections.connect(buyer_socket, "buyer-1")
        await connections.connect(seller_socket, "landlord-1")

        assert connections.subscribe(buyer_socket, ["notifications", "prices"]) == ["notifications"]
        connections.subscribe(seller_socket, ["notifications"])

        message = {"type": "event", "event_type": "token_request"}
        await connections._do_broadcast(message, "notifications", "buyer-1")

        buyer_socket.send_json.assert_awaited_once_with(message)
        seller_socket.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        connections = ConnectionManager()
        websocket = fake_socket()
        await connections.connect(websocket, "buyer-1")
        connections.subscribe(websocket, ["notifications"])
        connections.unsubscribe(websocket, ["notifications"])

        await connections._do_broadcast({"type": "event"}, "notifications", "buyer-1")
        websocket.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        connections = ConnectionManager()
        websocket = fake_socket()
        websocket.send_json.side_effect = RuntimeError("socket closed")
        await connections.connect(websocket, "buyer-1")
        connections.subscribe(websocket, ["notifications"])

        await connections._do_broadcast({"type": "event"}, "notifications", "buyer-1")
        assert connections.get_stats()["active_connections"] == 0
        assert websocket not in connections.identities


class TestWebSocketEndpoint:
    """Tests for the /ws handshake and subscribe protocol"""

    def test_connection_without_identity_refused(self):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == 1008

    def test_unknown_role_refused(self):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws", headers={"X-User-Id": "buyer-1", "X-User-Role": "wizard"}):
                pass

    def test_subscription_bound_to_caller(self, auth_headers, buyer):
        client = TestClient(app)
        with client.websocket_connect("/ws", headers=auth_headers(buyer)) as websocket:
            connected = websocket.receive_json()
            assert connected["type"] == "connected"
            assert connected["user_id"] == buyer.user_id

            # A user_id in the message body is not an identity
            websocket.send_json({"type": "subscribe", "channels": ["notifications"], "user_id": "buyer-2"})
            reply = websocket.receive_json()
            assert reply == {"type": "subscribed", "channels": ["notifications"]}

            subscribed = [keys for keys in manager.subscriptions.values() if keys]
            assert {"notifications:buyer-1"} in subscribed
            assert all("notifications:buyer-2" not in keys for keys in subscribed)
