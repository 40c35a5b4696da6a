"""
Core Infrastructure Module

This module contains the persistence-facing collaborators of the call lifecycle:
- SqlSessionStore: versioned storage of group call sessions
- SqlRoomDirectory: read-only room, membership and user lookups

Usage:
    from groupcall.services.core import SqlSessionStore, SqlRoomDirectory
"""

from groupcall.services.core.session_store import SqlSessionStore
from groupcall.services.core.room_directory import SqlRoomDirectory

__all__ = [
    "SqlSessionStore",
    "SqlRoomDirectory",
]
