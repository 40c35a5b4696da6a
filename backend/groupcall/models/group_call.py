"""
GroupCall Model - Group Call Session Storage

One row per call session attached to a room. The ``version`` column is the
optimistic-concurrency token: every write bumps it and is filtered on the
value that was read.
"""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON
from datetime import datetime
import uuid

from .database import Base


class GroupCall(Base):
    """Group call session row"""
    __tablename__ = "group_calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    room_id = Column(String(36), ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False, index=True)

    # Real-time channel name ("group-call-<uuid>")
    session_channel = Column(String(64), unique=True, nullable=False, index=True)

    initiator_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    call_type = Column(String(10), nullable=False, default='video')  # audio, video
    status = Column(String(20), nullable=False, default='ringing', index=True)  # ringing, active, ended

    # Ordered list of connected user ids
    active_participants = Column(JSON, nullable=False, default=list)

    # Timing
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
