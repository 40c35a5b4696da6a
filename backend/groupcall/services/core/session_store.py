"""
Session Store - SQLAlchemy persistence of group call sessions.

Reads return detached CallSession snapshots. Writes are optimistic: each
one is filtered on the ``version`` that was read and bumps it, so a
concurrent writer makes the statement match zero rows and the store raises
WriteConflictError instead of overwriting.

Usage:
    store = SqlSessionStore(AsyncSessionLocal)
    session = await store.find_session_by_id(call_id)
"""

import logging
from collections import defaultdict
from typing import Any, Collection, Dict, List, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groupcall.models.database import AsyncSessionLocal
from groupcall.models.group_call import GroupCall
from groupcall.models.group_call_participant import GroupCallParticipant
from groupcall.services.group_call.exceptions import CallNotFoundError, WriteConflictError
from groupcall.services.group_call.models import (
    CallSession,
    CallStatus,
    Participant,
    ParticipantStatus,
)
from groupcall.services.group_call.state import sync_status

logger = logging.getLogger(__name__)

LIVE_STATUSES = (CallStatus.RINGING.value, CallStatus.ACTIVE.value)


def _to_participant(row: GroupCallParticipant) -> Participant:
    return Participant(
        user_id=row.user_id,
        status=row.status,
        joined_at=row.joined_at,
        left_at=row.left_at,
        notification_sent=bool(row.notification_sent),
        notification_delivered=bool(row.notification_delivered),
    )


def _to_session(call: GroupCall, rows: List[GroupCallParticipant]) -> CallSession:
    return CallSession(
        id=call.id,
        room_id=call.room_id,
        session_channel=call.session_channel,
        initiator_id=call.initiator_id,
        call_type=call.call_type,
        status=call.status,
        participants=[_to_participant(r) for r in rows],
        active_participants=list(call.active_participants or []),
        started_at=call.started_at,
        ended_at=call.ended_at,
        duration=call.duration,
        version=call.version,
        created_at=call.created_at,
    )


class SqlSessionStore:
    """SessionStore backed by the ``group_calls`` tables."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal

    # === Reads ===

    async def find_session_by_id(self, session_id: str) -> Optional[CallSession]:
        async with self._session_factory() as db:
            call = await db.get(GroupCall, session_id)
            if call is None:
                return None
            rows = await self._participant_rows(db, [call.id])
            return _to_session(call, rows[call.id])

    async def find_active_session_for_room(self, room_id: str) -> Optional[CallSession]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(GroupCall)
                .where(
                    GroupCall.room_id == room_id,
                    GroupCall.status.in_(LIVE_STATUSES),
                )
                .order_by(GroupCall.created_at.desc())
                .limit(1)
            )
            call = result.scalar_one_or_none()
            if call is None:
                return None
            rows = await self._participant_rows(db, [call.id])
            return _to_session(call, rows[call.id])

    async def find_pending_for_user(self, user_id: str) -> List[CallSession]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(GroupCall)
                .join(GroupCallParticipant, GroupCallParticipant.call_id == GroupCall.id)
                .where(
                    GroupCallParticipant.user_id == user_id,
                    GroupCallParticipant.status == ParticipantStatus.INVITED.value,
                    GroupCall.status == CallStatus.RINGING.value,
                )
                .order_by(GroupCall.created_at.desc())
            )
            calls = result.scalars().unique().all()
            if not calls:
                return []
            rows = await self._participant_rows(db, [c.id for c in calls])
            return [_to_session(c, rows[c.id]) for c in calls]

    # === Writes ===

    async def create_session(self, session: CallSession) -> CallSession:
        async with self._session_factory() as db:
            call = GroupCall(
                room_id=session.room_id,
                session_channel=session.session_channel,
                initiator_id=session.initiator_id,
                call_type=session.call_type.value,
                status=session.status.value,
                active_participants=list(session.active_participants),
                started_at=session.started_at,
                version=1,
            )
            if session.created_at is not None:
                call.created_at = session.created_at
            db.add(call)
            await db.flush()

            for position, participant in enumerate(session.participants):
                db.add(GroupCallParticipant(
                    call_id=call.id,
                    user_id=participant.user_id,
                    position=position,
                    status=ParticipantStatus(participant.status).value,
                    joined_at=participant.joined_at,
                    left_at=participant.left_at,
                    notification_sent=participant.notification_sent,
                    notification_delivered=participant.notification_delivered,
                ))

            await db.commit()
            await db.refresh(call)

            logger.info(f"[Store] Created group call {call.id} for room {call.room_id}")
            return session.model_copy(update={
                "id": call.id,
                "version": call.version,
                "created_at": call.created_at,
            })

    async def save_session(self, session: CallSession) -> None:
        async with self._session_factory() as db:
            result = await db.execute(
                update(GroupCall)
                .where(
                    GroupCall.id == session.id,
                    GroupCall.version == session.version,
                )
                .values(
                    status=CallStatus(session.status).value,
                    active_participants=list(session.active_participants),
                    ended_at=session.ended_at,
                    duration=session.duration,
                    version=session.version + 1,
                )
            )
            if result.rowcount != 1:
                await db.rollback()
                await self._raise_write_failure(db, session.id, session.version)

            for participant in session.participants:
                # Notification flags are written only by mark_notifications_sent
                await db.execute(
                    update(GroupCallParticipant)
                    .where(
                        GroupCallParticipant.call_id == session.id,
                        GroupCallParticipant.user_id == participant.user_id,
                    )
                    .values(
                        status=ParticipantStatus(participant.status).value,
                        joined_at=participant.joined_at,
                        left_at=participant.left_at,
                    )
                )

            await db.commit()

        session.version += 1

    async def conditional_update_participant(
        self,
        session_id: str,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        from_statuses: Optional[Collection[str]] = None,
        add_active: bool = False,
        remove_active: bool = False,
    ) -> Optional[CallSession]:
        unknown = set(fields) - set(Participant.model_fields)
        if unknown:
            raise ValueError(f"Unknown participant fields: {sorted(unknown)}")

        session = await self.find_session_by_id(session_id)
        if session is None:
            return None
        participant = session.get_participant(user_id)
        if participant is None:
            return None
        if session.status == CallStatus.ENDED:
            return session

        allowed = None
        if from_statuses is not None:
            allowed = {ParticipantStatus(s) for s in from_statuses}
        if allowed is None or ParticipantStatus(participant.status) in allowed:
            for name, value in fields.items():
                if name == "status":
                    value = ParticipantStatus(value)
                setattr(participant, name, value)

        if remove_active:
            session.active_participants = [uid for uid in session.active_participants if uid != user_id]
        if add_active and user_id not in session.active_participants:
            session.active_participants.append(user_id)
        sync_status(session)

        await self.save_session(session)
        return session

    async def mark_notifications_sent(self, session_id: str, user_ids: Collection[str]) -> None:
        if not user_ids:
            return
        async with self._session_factory() as db:
            await db.execute(
                update(GroupCallParticipant)
                .where(
                    GroupCallParticipant.call_id == session_id,
                    GroupCallParticipant.user_id.in_(list(user_ids)),
                )
                .values(notification_sent=True)
            )
            await db.commit()

    # === Helpers ===

    @staticmethod
    async def _participant_rows(
        db: AsyncSession,
        call_ids: List[str]
    ) -> Dict[str, List[GroupCallParticipant]]:
        result = await db.execute(
            select(GroupCallParticipant)
            .where(GroupCallParticipant.call_id.in_(call_ids))
            .order_by(GroupCallParticipant.call_id, GroupCallParticipant.position)
        )
        grouped: Dict[str, List[GroupCallParticipant]] = defaultdict(list)
        for row in result.scalars().all():
            grouped[row.call_id].append(row)
        return grouped

    @staticmethod
    async def _raise_write_failure(db: AsyncSession, session_id: str, expected_version: int) -> None:
        current = await db.scalar(select(GroupCall.version).where(GroupCall.id == session_id))
        await db.rollback()
        if current is None:
            raise CallNotFoundError(f"Group call {session_id} not found")
        raise WriteConflictError(
            f"Group call {session_id} changed concurrently (expected version {expected_version}, found {current})"
        )
