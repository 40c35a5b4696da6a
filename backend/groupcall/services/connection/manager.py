"""
Connection Manager

Core WebSocket connection management:
- Connection/disconnection handling
- Channel subscriptions (rooms and call session channels)
- Event delivery to channels and users (the NotificationDispatcher)
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, TYPE_CHECKING
import logging

from fastapi import WebSocket

from groupcall.config.constants import SEND_TIMEOUT_SEC
from .models import ClientConnection

if TYPE_CHECKING:
    from .relay import CallEventRelay

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages all WebSocket connections of this process.

    Every socket is implicitly addressable as a channel named by its
    socket id, so an event can be sent to one socket through
    ``emit_to_channel``.
    """

    def __init__(self, send_timeout_sec: float = SEND_TIMEOUT_SEC):
        self.send_timeout_sec = send_timeout_sec
        # socket_id -> ClientConnection
        self._connections: Dict[str, ClientConnection] = {}
        # channel -> socket ids
        self._channels: Dict[str, Set[str]] = {}
        # user_id -> socket ids
        self._user_sockets: Dict[str, Set[str]] = {}
        # Lock for registry mutations
        self._lock = asyncio.Lock()
        self._relay: Optional["CallEventRelay"] = None

    def attach_relay(self, relay: Optional["CallEventRelay"]) -> None:
        """Forward emitted events to other processes through ``relay``."""
        self._relay = relay

    # === Core Connection Methods ===

    async def connect(
        self,
        websocket: WebSocket,
        user_id: str,
        channels: Iterable[str] = ()
    ) -> ClientConnection:
        """Register a new (already accepted) WebSocket connection."""
        conn = ClientConnection(websocket=websocket, user_id=user_id)
        async with self._lock:
            self._connections[conn.socket_id] = conn
            self._user_sockets.setdefault(user_id, set()).add(conn.socket_id)
            for channel in channels:
                self._subscribe_locked(conn, channel)

        logger.info(f"User {user_id} connected as socket {conn.socket_id} ({len(conn.channels)} channels)")
        return conn

    async def disconnect(self, socket_id: str) -> Optional[ClientConnection]:
        """Remove a connection and all of its subscriptions."""
        async with self._lock:
            conn = self._connections.pop(socket_id, None)
            if conn is None:
                return None

            for channel in list(conn.channels):
                self._unsubscribe_locked(conn, channel)

            sockets = self._user_sockets.get(conn.user_id)
            if sockets is not None:
                sockets.discard(socket_id)
                if not sockets:
                    del self._user_sockets[conn.user_id]

        logger.info(f"User {conn.user_id} disconnected (socket {socket_id})")
        return conn

    async def subscribe(self, socket_id: str, channel: str) -> bool:
        async with self._lock:
            conn = self._connections.get(socket_id)
            if conn is None:
                return False
            self._subscribe_locked(conn, channel)
        logger.debug(f"Socket {socket_id} subscribed to {channel}")
        return True

    async def unsubscribe(self, socket_id: str, channel: str) -> bool:
        async with self._lock:
            conn = self._connections.get(socket_id)
            if conn is None:
                return False
            self._unsubscribe_locked(conn, channel)
        logger.debug(f"Socket {socket_id} unsubscribed from {channel}")
        return True

    # === NotificationDispatcher ===

    async def emit_to_channel(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to every socket in ``channel`` and relay it."""
        sent_count = await self.deliver_to_channel(channel, event, payload)
        await self._relay_event("channel", channel, event, payload)
        return sent_count

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to every socket of ``user_id`` and relay it."""
        sent_count = await self.deliver_to_user(user_id, event, payload)
        await self._relay_event("user", user_id, event, payload)
        return sent_count

    async def list_connected_sockets_in_channel(self, channel: str) -> List[Tuple[str, str]]:
        return [(conn.socket_id, conn.user_id) for conn in self._channel_connections(channel)]

    # === Local delivery ===

    async def deliver_to_channel(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to the sockets of ``channel`` on this process only."""
        connections = self._channel_connections(channel)
        direct = self._connections.get(channel)
        if direct is not None and direct not in connections:
            connections.append(direct)
        return await self._send_all(connections, event, payload)

    async def deliver_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to the sockets of ``user_id`` on this process only."""
        connections = [
            self._connections[sid]
            for sid in self._user_sockets.get(user_id, ())
            if sid in self._connections
        ]
        return await self._send_all(connections, event, payload)

    # === Query Methods ===

    def get_user_socket_ids(self, user_id: str) -> List[str]:
        return list(self._user_sockets.get(user_id, ()))

    def is_user_connected(self, user_id: str) -> bool:
        return bool(self._user_sockets.get(user_id))

    def get_channel_count(self) -> int:
        return len(self._channels)

    def get_total_connections(self) -> int:
        return len(self._connections)

    # === Internals ===

    def _subscribe_locked(self, conn: ClientConnection, channel: str) -> None:
        conn.channels.add(channel)
        self._channels.setdefault(channel, set()).add(conn.socket_id)

    def _unsubscribe_locked(self, conn: ClientConnection, channel: str) -> None:
        conn.channels.discard(channel)
        members = self._channels.get(channel)
        if members is not None:
            members.discard(conn.socket_id)
            if not members:
                del self._channels[channel]

    def _channel_connections(self, channel: str) -> List[ClientConnection]:
        return [
            self._connections[sid]
            for sid in list(self._channels.get(channel, ()))
            if sid in self._connections
        ]

    async def _send_all(
        self,
        connections: List[ClientConnection],
        event: str,
        payload: Dict[str, Any]
    ) -> int:
        if not connections:
            return 0
        message = {"type": event, **payload}
        results = await asyncio.gather(*(self._send_one(conn, message) for conn in connections))
        return sum(1 for ok in results if ok)

    async def _send_one(self, conn: ClientConnection, message: Dict[str, Any]) -> bool:
        try:
            return await asyncio.wait_for(conn.send_json(message), self.send_timeout_sec)
        except asyncio.TimeoutError:
            logger.warning(
                f"[Dispatch] Send of {message.get('type')} to {conn.user_id} ({conn.socket_id}) "
                f"timed out after {self.send_timeout_sec}s"
            )
            return False

    async def _relay_event(self, target_kind: str, target: str, event: str, payload: Dict[str, Any]) -> None:
        if self._relay is None:
            return
        try:
            await asyncio.wait_for(
                self._relay.publish(target_kind, target, event, payload),
                self.send_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.error(f"[Dispatch] Relay of {event} to {target_kind} {target} timed out")
        except Exception as e:
            logger.error(f"[Dispatch] Failed to relay {event} to {target_kind} {target}: {e}")
