"""
WebSocket Event Schemas

Pydantic models for the events pushed to clients and the control
messages clients send.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel


# =============================================================================
# Server -> client events
# =============================================================================

class InitiatorInfo(BaseModel):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None


class InviteParticipant(BaseModel):
    user_id: str
    status: str
    username: Optional[str] = None


class CallInviteEvent(BaseModel):
    """Sent to each invited member's sockets when a call starts."""
    call_id: str
    session_channel: str
    room_id: str
    room_name: str
    call_type: str
    initiator: InitiatorInfo
    participants: List[InviteParticipant]


class ParticipantJoinedEvent(BaseModel):
    call_id: str
    user_id: str
    active_participants: List[str]


class ParticipantLeftEvent(BaseModel):
    call_id: str
    user_id: str
    active_participants: List[str]
    call_ended: bool


class CallEndedEvent(BaseModel):
    call_id: str
    reason: str


# =============================================================================
# Client -> server messages
# =============================================================================

class ClientMessage(BaseModel):
    """Base model for all client messages."""
    type: str


class SubscribeMessage(ClientMessage):
    """Follow a channel (a call's session channel or a room id)."""
    type: Literal["subscribe"] = "subscribe"
    channel: str


class UnsubscribeMessage(ClientMessage):
    type: Literal["unsubscribe"] = "unsubscribe"
    channel: str


class PingMessage(ClientMessage):
    """Simple ping for latency check."""
    type: Literal["ping"] = "ping"
