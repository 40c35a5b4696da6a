"""
Database Models Package

This module exports all SQLAlchemy models for the group call service.

Tables:
1. users - Read-only user identities
2. rooms - Chat rooms owning group calls
3. room_members - Room membership
4. group_calls - Group call sessions
5. group_call_participants - Per-participant call state
"""

from .database import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
)

from .user import User
from .room import Room, RoomMember
from .group_call import GroupCall
from .group_call_participant import GroupCallParticipant

__all__ = [
    # Database utilities
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",

    # Models
    "User",
    "Room",
    "RoomMember",
    "GroupCall",
    "GroupCallParticipant",
]
