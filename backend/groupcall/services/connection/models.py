"""
Connection Models

Data classes representing WebSocket connections.
"""
from typing import Dict, Any, Set
import logging
import uuid

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ClientConnection:
    """Represents a single WebSocket connection of a user."""

    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.socket_id = uuid.uuid4().hex
        self.channels: Set[str] = set()

    async def send_json(self, data: Dict[str, Any]) -> bool:
        """Send JSON message to this connection."""
        try:
            await self.websocket.send_json(data)
            return True
        except Exception as e:
            logger.error(f"Error sending JSON to {self.user_id} ({self.socket_id}): {e}")
            return False
