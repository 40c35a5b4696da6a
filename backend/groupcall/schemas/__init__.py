"""
Schemas Package

Pydantic models for API responses and WebSocket events.
"""

from groupcall.schemas.events import (
    CallInviteEvent,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    CallEndedEvent,
    ClientMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    PingMessage,
)

__all__ = [
    "CallInviteEvent",
    "ParticipantJoinedEvent",
    "ParticipantLeftEvent",
    "CallEndedEvent",
    "ClientMessage",
    "SubscribeMessage",
    "UnsubscribeMessage",
    "PingMessage",
]
