"""
Group Call Validators

Validation methods for group call operations:
- Request argument validation
- Room existence and membership
- Session existence and participation
"""
from typing import Optional, TYPE_CHECKING

from .models import CallSession, CallType, RoomInfo
from .exceptions import (
    InvalidRequestError,
    RoomNotFoundError,
    CallNotFoundError,
    NotParticipantError,
)

if TYPE_CHECKING:
    from groupcall.services.protocols import RoomDirectory


def validate_room_id(room_id: Optional[str]) -> str:
    if not room_id or not str(room_id).strip():
        raise InvalidRequestError("Room ID is required")
    return str(room_id).strip()


def validate_call_id(call_id: Optional[str]) -> str:
    if not call_id or not str(call_id).strip():
        raise InvalidRequestError("Call ID is required")
    return str(call_id).strip()


def validate_call_type(call_type: Optional[str]) -> CallType:
    try:
        return CallType(call_type)
    except ValueError:
        allowed = ", ".join(t.value for t in CallType)
        raise InvalidRequestError(f"Invalid call type {call_type!r} (expected one of: {allowed})")


async def validate_room_access(
    rooms: "RoomDirectory",
    room_id: str,
    user_id: str
) -> RoomInfo:
    """
    Validate that the room exists and the user belongs to it.

    Returns:
        RoomInfo of the room

    Raises:
        RoomNotFoundError if the room doesn't exist
        NotParticipantError if the user is not a member
    """
    room = await rooms.room_by_id(room_id)
    if room is None:
        raise RoomNotFoundError(f"Room {room_id} not found")

    if user_id not in room.participant_ids:
        raise NotParticipantError(f"User {user_id} is not a participant of room {room_id}")

    return room


def require_session(session: Optional[CallSession], call_id: str) -> CallSession:
    if session is None:
        raise CallNotFoundError(f"Group call {call_id} not found")
    return session


def require_participant(session: CallSession, user_id: str) -> None:
    if not session.has_participant(user_id):
        raise NotParticipantError(f"User {user_id} is not a participant of call {session.id}")
