"""
GroupCallParticipant Model - Per-Participant Call State

One row per room member invited to a group call.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey, UniqueConstraint
import uuid

from .database import Base


class GroupCallParticipant(Base):
    """Participant in a group call"""
    __tablename__ = "group_call_participants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # References
    call_id = Column(String(36), ForeignKey('group_calls.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    # Roster order within the call
    position = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default='invited', index=True)  # invited, joined, declined, left, missed

    # Timing
    joined_at = Column(DateTime, nullable=True)
    left_at = Column(DateTime, nullable=True)

    # Invitation delivery
    notification_sent = Column(Boolean, default=False, nullable=False)
    notification_delivered = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint('call_id', 'user_id', name='uq_group_call_user'),
    )
