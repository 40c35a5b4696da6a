"""
Room Directory - read-only room, membership and user lookups.
"""

import logging
from typing import Collection, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from groupcall.models.database import AsyncSessionLocal
from groupcall.models.room import Room, RoomMember
from groupcall.models.user import User
from groupcall.services.group_call.models import RoomInfo, UserInfo

logger = logging.getLogger(__name__)


class SqlRoomDirectory:
    """RoomDirectory backed by the ``rooms``, ``room_members`` and ``users`` tables."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal

    async def room_by_id(self, room_id: str) -> Optional[RoomInfo]:
        async with self._session_factory() as db:
            room = await db.get(Room, room_id)
            if room is None:
                return None
            result = await db.execute(
                select(RoomMember.user_id)
                .where(RoomMember.room_id == room_id)
                .order_by(RoomMember.joined_at, RoomMember.id)
            )
            return RoomInfo(
                id=room.id,
                name=room.name,
                participant_ids=list(result.scalars().all()),
            )

    async def is_member(self, room_id: str, user_id: str) -> bool:
        async with self._session_factory() as db:
            member_id = await db.scalar(
                select(RoomMember.id).where(
                    RoomMember.room_id == room_id,
                    RoomMember.user_id == user_id,
                )
            )
            return member_id is not None

    async def users_by_ids(self, user_ids: Collection[str]) -> Dict[str, UserInfo]:
        if not user_ids:
            return {}
        async with self._session_factory() as db:
            result = await db.execute(select(User).where(User.id.in_(list(user_ids))))
            return {
                user.id: UserInfo(id=user.id, username=user.username, email=user.email)
                for user in result.scalars().all()
            }

    async def room_ids_for_user(self, user_id: str) -> List[str]:
        """Rooms a user belongs to; used to subscribe new sockets to their rooms."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(RoomMember.room_id).where(RoomMember.user_id == user_id)
            )
            return list(result.scalars().all())
