"""
Group Call Module

Re-exports the lifecycle manager, timer registry, domain models and exceptions.
"""
from .lifecycle import GroupCallLifecycleManager
from .timers import TimerRegistry, ScheduledTimer
from .models import (
    CallDetails,
    CallSession,
    CallStatus,
    CallType,
    InitiateResult,
    Participant,
    ParticipantStatus,
    RoomInfo,
    UserInfo,
)
from .exceptions import (
    GroupCallError,
    InvalidRequestError,
    NotFoundError,
    RoomNotFoundError,
    CallNotFoundError,
    ForbiddenError,
    NotParticipantError,
    WriteConflictError,
    CallInternalError,
)

__all__ = [
    "GroupCallLifecycleManager",
    "TimerRegistry",
    "ScheduledTimer",
    "CallDetails",
    "CallSession",
    "CallStatus",
    "CallType",
    "InitiateResult",
    "Participant",
    "ParticipantStatus",
    "RoomInfo",
    "UserInfo",
    "GroupCallError",
    "InvalidRequestError",
    "NotFoundError",
    "RoomNotFoundError",
    "CallNotFoundError",
    "ForbiddenError",
    "NotParticipantError",
    "WriteConflictError",
    "CallInternalError",
]
