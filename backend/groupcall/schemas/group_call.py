from typing import List, Optional
from pydantic import BaseModel

from groupcall.services.group_call.models import CallDetails


class InitiateCallRequest(BaseModel):
    room_id: Optional[str] = None
    call_type: Optional[str] = "video"


class UserSummary(BaseModel):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None


class ParticipantInfo(BaseModel):
    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    status: str
    joined_at: Optional[str] = None
    left_at: Optional[str] = None
    notification_sent: bool
    notification_delivered: bool


class GroupCallResponse(BaseModel):
    call_id: str
    room_id: Optional[str] = None
    room_name: Optional[str] = None
    session_channel: str
    call_type: str
    status: str
    initiator: UserSummary
    participants: List[ParticipantInfo]
    active_participants: List[str]
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    duration: Optional[int] = None


class InitiateCallResponse(BaseModel):
    message: str
    created: bool
    call: GroupCallResponse


class CallResponse(BaseModel):
    message: str
    call: GroupCallResponse


class PendingCallsResponse(BaseModel):
    calls: List[GroupCallResponse]


class DeclineCallResponse(BaseModel):
    message: str
    call_id: str


class LeaveCallResponse(BaseModel):
    message: str
    call_id: str
    call_ended: bool


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def to_call_response(details: CallDetails) -> GroupCallResponse:
    """Flatten a CallDetails into the API shape."""
    session = details.session
    users = details.users
    initiator = users.get(session.initiator_id)

    return GroupCallResponse(
        call_id=session.id,
        room_id=session.room_id,
        room_name=details.room_name,
        session_channel=session.session_channel,
        call_type=session.call_type.value,
        status=session.status.value,
        initiator=UserSummary(
            id=session.initiator_id,
            username=initiator.username if initiator else None,
            email=initiator.email if initiator else None,
        ),
        participants=[
            ParticipantInfo(
                user_id=p.user_id,
                username=users[p.user_id].username if p.user_id in users else None,
                email=users[p.user_id].email if p.user_id in users else None,
                status=p.status.value,
                joined_at=_iso(p.joined_at),
                left_at=_iso(p.left_at),
                notification_sent=p.notification_sent,
                notification_delivered=p.notification_delivered,
            )
            for p in session.participants
        ],
        active_participants=list(session.active_participants),
        started_at=_iso(session.started_at),
        ended_at=_iso(session.ended_at),
        duration=session.duration,
    )
