"""
Group Call Domain Models

Detached snapshots of a call session as read from the session store.
The lifecycle manager mutates these in memory within one request and writes
them back; they are never kept across requests.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CallType(str, Enum):
    """Media kind of a group call"""
    AUDIO = "audio"
    VIDEO = "video"


class CallStatus(str, Enum):
    """Session status"""
    RINGING = "ringing"
    ACTIVE = "active"
    ENDED = "ended"


class ParticipantStatus(str, Enum):
    """Per-participant status"""
    INVITED = "invited"
    JOINED = "joined"
    DECLINED = "declined"
    LEFT = "left"
    MISSED = "missed"


class Participant(BaseModel):
    """One invited room member"""
    user_id: str
    status: ParticipantStatus = ParticipantStatus.INVITED
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    notification_sent: bool = False
    notification_delivered: bool = False


class CallSession(BaseModel):
    """Group call session snapshot"""
    id: Optional[str] = None
    room_id: str
    session_channel: str
    initiator_id: str
    call_type: CallType = CallType.VIDEO
    status: CallStatus = CallStatus.RINGING
    participants: List[Participant] = Field(default_factory=list)
    active_participants: List[str] = Field(default_factory=list)
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None

    def get_participant(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def has_participant(self, user_id: str) -> bool:
        return self.get_participant(user_id) is not None

    @property
    def is_ended(self) -> bool:
        return self.status == CallStatus.ENDED


class RoomInfo(BaseModel):
    """Read-only view of a chat room"""
    id: str
    name: str
    participant_ids: List[str] = Field(default_factory=list)


class UserInfo(BaseModel):
    """Read-only view of a user, used to resolve identities in payloads"""
    id: str
    username: str
    email: Optional[str] = None


class CallDetails(BaseModel):
    """A session together with its room name and resolved participant identities"""
    session: CallSession
    room_name: Optional[str] = None
    users: Dict[str, UserInfo] = Field(default_factory=dict)


class InitiateResult(BaseModel):
    call: CallDetails
    # False when an existing live session was returned instead
    created: bool
