"""
Protocol definitions for the collaborators of the call lifecycle.

This module defines interfaces (Python Protocols) that allow:
- Swapping implementations (e.g., SQL store -> document store)
- Testing without a database or live sockets
- Clear contracts between components

Usage:
    from groupcall.services.protocols import SessionStore

    async def end_if_empty(store: SessionStore, call_id: str):
        session = await store.find_session_by_id(call_id)
        ...
"""

from typing import Any, Collection, Dict, List, Mapping, Optional, Protocol, Tuple

from groupcall.services.group_call.models import CallSession, RoomInfo, UserInfo


class SessionStore(Protocol):
    """
    Durable storage of call sessions.

    Every write is checked against the version that was read; a write whose
    version moved raises WriteConflictError so the caller can re-read and
    retry. A missing session is reported as None, never as a conflict.
    """

    async def find_active_session_for_room(self, room_id: str) -> Optional[CallSession]:
        """Return the ringing or active session of a room, if any."""
        ...

    async def create_session(self, session: CallSession) -> CallSession:
        """Insert a new session; the store assigns its id."""
        ...

    async def find_session_by_id(self, session_id: str) -> Optional[CallSession]:
        """Return the session, or None if it does not exist."""
        ...

    async def find_pending_for_user(self, user_id: str) -> List[CallSession]:
        """Ringing sessions where the user is still invited, newest first."""
        ...

    async def conditional_update_participant(
        self,
        session_id: str,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        from_statuses: Optional[Collection[str]] = None,
        add_active: bool = False,
        remove_active: bool = False,
    ) -> Optional[CallSession]:
        """
        Atomically update one participant and the connected set.

        Args:
            session_id: Session to update
            user_id: Participant to update
            fields: Participant fields to set
            from_statuses: Apply ``fields`` only if the participant's current
                status is one of these
            add_active: Add ``user_id`` to the connected set
            remove_active: Remove ``user_id`` from the connected set

        Returns:
            The updated session, the unchanged session if it already ended,
            or None if the session or participant does not exist.

        Raises:
            WriteConflictError if the session changed concurrently.
        """
        ...

    async def save_session(self, session: CallSession) -> None:
        """
        Write a whole session snapshot back.

        Raises:
            WriteConflictError if the stored version is not ``session.version``.
        """
        ...

    async def mark_notifications_sent(self, session_id: str, user_ids: Collection[str]) -> None:
        """Set ``notification_sent`` for the given participants."""
        ...


class RoomDirectory(Protocol):
    """Read-only room and user lookups owned by the chat service."""

    async def room_by_id(self, room_id: str) -> Optional[RoomInfo]:
        """Return the room and its member ids, or None."""
        ...

    async def is_member(self, room_id: str, user_id: str) -> bool:
        """Whether the user belongs to the room."""
        ...

    async def users_by_ids(self, user_ids: Collection[str]) -> Dict[str, UserInfo]:
        """Resolve user identities; unknown ids are omitted."""
        ...


class NotificationDispatcher(Protocol):
    """
    Real-time delivery of named events.

    Delivery is best-effort. Each method returns the number of sockets
    the event was handed to on this process.
    """

    async def emit_to_channel(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """Send to every socket subscribed to ``channel`` (or the socket with that id)."""
        ...

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Send to every socket of ``user_id``."""
        ...

    async def list_connected_sockets_in_channel(self, channel: str) -> List[Tuple[str, str]]:
        """Return ``(socket_id, user_id)`` for every socket subscribed to ``channel``."""
        ...
