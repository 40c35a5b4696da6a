"""
User Model - Identity Lookup

Read-only projection of the chat users. Identity and authentication are
owned elsewhere; the call service only resolves usernames for payloads.
"""
from sqlalchemy import Column, String, DateTime
from datetime import datetime
import uuid

from .database import Base


class User(Base):
    """Chat user"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(100), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
