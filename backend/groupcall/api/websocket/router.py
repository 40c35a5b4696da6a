"""
WebSocket Router - Real-time Group Call Events

Clients connect once per device and receive call events for their rooms
(call invitations) and for the call session channels they subscribe to.
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from pydantic import ValidationError

from groupcall.config.constants import SESSION_CHANNEL_PREFIX
from groupcall.schemas.events import SubscribeMessage, UnsubscribeMessage
from groupcall.services.connection import ClientConnection, connection_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def ws_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None),
):
    """
    WebSocket endpoint for group call events.

    Query Parameters:
        user_id: Identity of the connecting user (required)

    Message Types (JSON):
        - subscribe: Follow a channel ({"channel": ...})
        - unsubscribe: Stop following a channel
        - ping: Latency check, answered with pong
    """
    if not user_id:
        logger.warning("[WebSocket] Missing user_id")
        await websocket.close(code=1008, reason="Missing user_id")
        return

    await websocket.accept()

    rooms = websocket.app.state.rooms
    room_ids = await rooms.room_ids_for_user(user_id)
    conn = await connection_manager.connect(websocket, user_id, channels=room_ids)
    await conn.send_json({
        "type": "connected",
        "socket_id": conn.socket_id,
        "channels": sorted(conn.channels),
    })

    try:
        while True:
            text_data = await websocket.receive_text()
            await _handle_text_message(conn, text_data, rooms)

    except WebSocketDisconnect:
        logger.info(f"[WebSocket] User {user_id} disconnected")

    except Exception as e:
        logger.error(f"[WebSocket] Error during message loop for {user_id}: {e}")

    finally:
        await connection_manager.disconnect(conn.socket_id)


async def _handle_text_message(conn: ClientConnection, text_data: str, rooms) -> None:
    """Handle one JSON control message."""
    try:
        data: Dict[str, Any] = json.loads(text_data)
    except json.JSONDecodeError:
        logger.warning("[WebSocket] Invalid JSON received")
        await conn.send_json({"type": "error", "message": "Invalid JSON"})
        return

    msg_type = data.get("type") if isinstance(data, dict) else None

    try:
        if msg_type == "subscribe":
            msg = SubscribeMessage(**data)
            if not await _may_subscribe(conn.user_id, msg.channel, rooms):
                await conn.send_json({"type": "error", "message": f"Not allowed to subscribe to {msg.channel}"})
                return
            await connection_manager.subscribe(conn.socket_id, msg.channel)
            await conn.send_json({"type": "subscribed", "channel": msg.channel})

        elif msg_type == "unsubscribe":
            msg = UnsubscribeMessage(**data)
            await connection_manager.unsubscribe(conn.socket_id, msg.channel)
            await conn.send_json({"type": "unsubscribed", "channel": msg.channel})

        elif msg_type == "ping":
            await conn.send_json({"type": "pong"})

        else:
            logger.warning(f"[WebSocket] Unknown message type: {msg_type}")
            await conn.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

    except ValidationError as e:
        logger.warning(f"[WebSocket] Malformed {msg_type} message from {conn.user_id}: {e}")
        await conn.send_json({"type": "error", "message": f"Malformed {msg_type} message"})


async def _may_subscribe(user_id: str, channel: str, rooms) -> bool:
    # Session channels are unguessable; room channels need membership.
    if channel.startswith(SESSION_CHANNEL_PREFIX):
        return True
    return await rooms.is_member(channel, user_id)
