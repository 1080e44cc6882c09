"""
WebSocket endpoint for real-time inventory updates.

Relays the inventory event channel (Redis pub/sub) to connected clients.
"""

import asyncio

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from core.config import get_settings
from core.security import decode_access_token

router = APIRouter()
logger = structlog.get_logger()


async def authenticate_ws(token: str) -> dict | None:
    """Validate JWT token from WebSocket query param."""
    settings = get_settings()
    if settings.debug:
        return {"sub": "dev-user"}
    return decode_access_token(token)


@router.websocket("/ws/inventory")
async def websocket_inventory(websocket: WebSocket, token: str = Query(...)):
    """
    Connect: ws://host/ws/inventory?token=<jwt>

    Messages sent to client:
        {"type": "grn.status_changed", "payload": {...}}
        {"type": "inventory.updated", "payload": {...}}
        {"type": "heartbeat", "payload": {}}
    """
    user = await authenticate_ws(token)
    if user is None:
        await websocket.close(code=4001, reason="Unauthorized")
        return

    await websocket.accept()

    settings = get_settings()
    channel = settings.inventory_event_channel
    redis = aioredis.from_url(settings.redis_url)
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)

    try:

        async def listen_redis():
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await websocket.send_text(message["data"].decode())

        async def send_heartbeat():
            while True:
                await asyncio.sleep(30)
                await websocket.send_json({"type": "heartbeat", "payload": {}})

        await asyncio.gather(listen_redis(), send_heartbeat())

    except WebSocketDisconnect:
        logger.info("ws.inventory_disconnected", user=user.get("sub"))
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await redis.aclose()
