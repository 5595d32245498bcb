"""WebSocket endpoints for real-time notification delivery"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from typing import List, Set, Optional
from datetime import datetime, timezone
import asyncio
import structlog

from assetx.api.identity import get_websocket_user
from assetx.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter()


# Available channels for subscription
CHANNELS = {
    "notifications": "Purchase request, payment and listing notifications",
}


class ConnectionManager:
    """Manages WebSocket connections and per-recipient broadcasts"""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self.subscriptions: dict[WebSocket, Set[str]] = {}
        self.identities: dict[WebSocket, str] = {}
        self._message_queue: asyncio.Queue = asyncio.Queue()
        self._broadcast_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the broadcast worker"""
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._broadcast_worker())
            logger.info("WebSocket broadcast worker started")

    async def stop(self):
        """Stop the broadcast worker"""
        if self._broadcast_task:
            self._broadcast_task.cancel()
            self._broadcast_task = None

    async def _broadcast_worker(self):
        """Background worker to process queued broadcasts"""
        while True:
            try:
                message, channel, recipient_id = await self._message_queue.get()
                await self._do_broadcast(message, channel, recipient_id)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Broadcast worker error", error=str(e))

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.active_connections.append(websocket)
        self.subscriptions[websocket] = set()
        self.identities[websocket] = user_id
        logger.info("WebSocket connected", user_id=user_id, total_connections=len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        self.subscriptions.pop(websocket, None)
        self.identities.pop(websocket, None)
        logger.info("WebSocket disconnected", total_connections=len(self.active_connections))

    def subscribe(self, websocket: WebSocket, channels: List[str]) -> List[str]:
        """Subscribe a connection to its own user's channels"""
        user_id = self.identities[websocket]
        valid_channels = [channel for channel in channels if channel in CHANNELS]
        for channel in valid_channels:
            self.subscriptions[websocket].add(f"{channel}:{user_id}")
        logger.info("WebSocket subscribed", channels=valid_channels, user_id=user_id)
        return valid_channels

    def unsubscribe(self, websocket: WebSocket, channels: List[str]):
        user_id = self.identities[websocket]
        for channel in channels:
            self.subscriptions[websocket].discard(f"{channel}:{user_id}")
        logger.info("WebSocket unsubscribed", channels=channels, user_id=user_id)

    async def broadcast(self, message: dict, channel: str, recipient_id: Optional[str] = None):
        """Queue a message for broadcast"""
        await self._message_queue.put((message, channel, recipient_id))

    async def _do_broadcast(self, message: dict, channel: str, recipient_id: Optional[str] = None):
        """Send a message to every connection subscribed to the recipient's channel"""
        key = f"{channel}:{recipient_id}" if recipient_id else channel

        disconnected = []
        for websocket in self.active_connections:
            if key in self.subscriptions.get(websocket, set()):
                try:
                    await websocket.send_json(message)
                except Exception as e:
                    logger.warning("Failed to send to websocket", error=str(e))
                    disconnected.append(websocket)

        for ws in disconnected:
            self.disconnect(ws)

    async def send_personal(self, websocket: WebSocket, message: dict):
        """Send message to a specific connection"""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error("Personal send failed", error=str(e))
            self.disconnect(websocket)

    def get_stats(self) -> dict:
        """Get connection statistics"""
        return {
            "active_connections": len(self.active_connections),
            "queue_size": self._message_queue.qsize(),
        }


# Global connection manager
manager = ConnectionManager()


async def broadcast_event(
    event_type: str,
    data: dict,
    channel: str,
    recipient_id: Optional[str] = None,
):
    """Queue an event for the recipient's WebSocket subscribers"""
    message = {
        "type": "event",
        "event_type": event_type,
        "channel": channel,
        "recipient_id": recipient_id,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    await manager.broadcast(message, channel, recipient_id)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user: CurrentUser = Depends(get_websocket_user)):
    """
    WebSocket endpoint for real-time notifications.

    The caller is identified by the same X-User-Id / X-User-Role headers as
    the HTTP API and only ever receives their own notifications.

    Supported message types:
    - {"type": "subscribe", "channels": ["notifications"]}
    - {"type": "unsubscribe", "channels": ["notifications"]}
    - {"type": "ping"}
    - {"type": "list_channels"}
    """
    await manager.connect(websocket, user.user_id)

    await manager.send_personal(websocket, {
        "type": "connected",
        "user_id": user.user_id,
        "available_channels": list(CHANNELS.keys()),
    })

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")

            if msg_type == "subscribe":
                valid_channels = manager.subscribe(websocket, data.get("channels", []))
                await manager.send_personal(websocket, {
                    "type": "subscribed",
                    "channels": valid_channels,
                })

            elif msg_type == "unsubscribe":
                channels = data.get("channels", [])
                manager.unsubscribe(websocket, channels)
                await manager.send_personal(websocket, {
                    "type": "unsubscribed",
                    "channels": channels,
                })

            elif msg_type == "list_channels":
                await manager.send_personal(websocket, {
                    "type": "channels",
                    "channels": CHANNELS,
                })

            elif msg_type == "ping":
                await manager.send_personal(websocket, {"type": "pong"})

            else:
                await manager.send_personal(websocket, {
                    "type": "error",
                    "message": f"Unknown message type: {msg_type}",
                })

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error", error=str(e))
        manager.disconnect(websocket)


@router.get("/ws/stats")
async def websocket_stats():
    """Get WebSocket connection statistics"""
    return manager.get_stats()


websocket_router = router
