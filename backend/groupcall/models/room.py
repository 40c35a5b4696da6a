"""
Room Models - Chat Rooms and Membership

Rooms own group calls. Membership is managed by the chat service;
this service only reads it.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
import uuid

from .database import Base


class Room(Base):
    """Chat room"""
    __tablename__ = "rooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RoomMember(Base):
    """Membership of a user in a room, in join order"""
    __tablename__ = "room_members"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('room_id', 'user_id', name='uq_room_user'),
    )
