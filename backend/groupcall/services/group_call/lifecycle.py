"""
Group Call Lifecycle Management - state transitions of group call sessions.

Single Responsibility: validate caller requests, compute the next session
state, write it to the session store, keep the abandonment timers in step
with the number of connected participants and tell connected clients.

The store is the system of record. Every mutation re-reads the session and
writes it back with a version check; conflicting writes are retried.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Tuple, TYPE_CHECKING

from groupcall.config.constants import (
    ABANDONMENT_TIMEOUT_SEC,
    DEFAULT_CALL_TYPE,
    END_REASON_NO_PARTICIPANTS,
    RINGING_STALE_AFTER_SEC,
    WRITE_RETRY_BACKOFF_SEC,
    WRITE_RETRY_MAX_ATTEMPTS,
)
from .exceptions import CallNotFoundError
from .models import (
    CallDetails,
    CallSession,
    CallStatus,
    InitiateResult,
    ParticipantStatus,
)
from .notifications import (
    send_call_invites,
    notify_participant_joined,
    notify_participant_left,
    notify_call_ended,
)
from .retry import retry_on_conflict
from .state import (
    LEAVING_STATUSES,
    apply_decline,
    apply_join,
    build_participants,
    finalize_ended,
    is_abandoned,
    new_session_channel,
    utcnow,
)
from .timers import TimerRegistry
from .validators import (
    require_participant,
    require_session,
    validate_call_id,
    validate_call_type,
    validate_room_access,
    validate_room_id,
)

if TYPE_CHECKING:
    from groupcall.services.protocols import NotificationDispatcher, RoomDirectory, SessionStore

logger = logging.getLogger(__name__)

EndPredicate = Callable[[CallSession, datetime], bool]


class GroupCallLifecycleManager:
    """
    Orchestrates group call sessions.

    Operations:
    - get_pending: ringing calls a user is invited to
    - initiate: start (or return the live) call of a room
    - get_call / decline / join / leave
    """

    def __init__(
        self,
        store: "SessionStore",
        rooms: "RoomDirectory",
        dispatcher: "NotificationDispatcher",
        timers: TimerRegistry,
        *,
        abandonment_timeout_sec: float = ABANDONMENT_TIMEOUT_SEC,
        ringing_stale_after_sec: float = RINGING_STALE_AFTER_SEC,
        retry_max_attempts: int = WRITE_RETRY_MAX_ATTEMPTS,
        retry_backoff_sec: float = WRITE_RETRY_BACKOFF_SEC,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.rooms = rooms
        self.dispatcher = dispatcher
        self.timers = timers
        self.abandonment_timeout_sec = abandonment_timeout_sec
        self.ringing_stale_after_sec = ringing_stale_after_sec
        self.retry_max_attempts = retry_max_attempts
        self.retry_backoff_sec = retry_backoff_sec
        self.clock = clock
        # In-flight broadcasts; held here so they are not garbage collected
        self._notification_tasks: Set[asyncio.Task] = set()

    # === Queries ===

    async def get_pending(self, user_id: str) -> List[CallDetails]:
        """Ringing calls where ``user_id`` is still invited, newest first."""
        sessions = await self.store.find_pending_for_user(user_id)
        return [await self._details(session) for session in sessions]

    async def get_call(self, user_id: str, call_id: str) -> CallDetails:
        """
        Fetch a call the user participates in.

        Raises:
            CallNotFoundError, NotParticipantError
        """
        call_id = validate_call_id(call_id)
        session = require_session(await self.store.find_session_by_id(call_id), call_id)
        require_participant(session, user_id)
        return await self._details(session)

    # === Transitions ===

    async def initiate(
        self,
        user_id: str,
        room_id: str,
        call_type: Optional[str] = DEFAULT_CALL_TYPE
    ) -> InitiateResult:
        """
        Start a group call for a room.

        A live call of the room is returned unchanged unless it is abandoned
        (nobody connected, or ringing for too long), in which case it is
        ended and replaced.

        Raises:
            InvalidRequestError, RoomNotFoundError, NotParticipantError
        """
        room_id = validate_room_id(room_id)
        kind = validate_call_type(call_type or DEFAULT_CALL_TYPE)
        room = await validate_room_access(self.rooms, room_id, user_id)

        existing = await self.store.find_active_session_for_room(room_id)
        if existing is not None:
            existing = await self._replace_if_abandoned(existing)
            if existing is not None:
                logger.info(
                    f"[Lifecycle] Room {room_id} already has live call {existing.id} "
                    f"with {len(existing.active_participants)} active participants"
                )
                return InitiateResult(
                    call=await self._details(existing, room_name=room.name),
                    created=False,
                )

        now = self.clock()
        session = await self.store.create_session(CallSession(
            room_id=room_id,
            session_channel=new_session_channel(),
            initiator_id=user_id,
            call_type=kind,
            status=CallStatus.RINGING,
            participants=build_participants(room.participant_ids, user_id, now),
            active_participants=[user_id],
            started_at=now,
        ))
        logger.info(
            f"[Lifecycle] User {user_id} started {kind.value} call {session.id} in room {room_id} "
            f"({len(session.participants)} participants)"
        )

        users = await self.rooms.users_by_ids(self._identity_ids(session))
        notified = await send_call_invites(self.dispatcher, session, room, users)
        if notified:
            for participant in session.participants:
                if participant.user_id in notified:
                    participant.notification_sent = True
            try:
                await self.store.mark_notifications_sent(session.id, notified)
            except Exception as e:
                logger.warning(f"[Lifecycle] Could not persist notification flags for call {session.id}: {e}")

        return InitiateResult(
            call=CallDetails(session=session, room_name=room.name, users=users),
            created=True,
        )

    async def decline(self, user_id: str, call_id: str) -> CallSession:
        """
        Decline an invitation.

        Declining an ended call, or after having joined, is accepted and
        changes nothing.
        """
        call_id = validate_call_id(call_id)

        async def attempt() -> Tuple[CallSession, bool]:
            session = require_session(await self.store.find_session_by_id(call_id), call_id)
            require_participant(session, user_id)
            changed = apply_decline(session, user_id)
            if changed:
                await self.store.save_session(session)
            return session, changed

        session, changed = await self._retry(attempt, f"decline group call {call_id}")
        if changed:
            logger.info(f"[Lifecycle] User {user_id} declined call {call_id}")
        else:
            logger.info(f"[Lifecycle] Decline by {user_id} on call {call_id} ignored (status={session.status.value})")
        return session

    async def join(self, user_id: str, call_id: str) -> CallDetails:
        """
        Join a call: mark the participant joined and connected, and promote
        a ringing call to active once two participants are connected.

        Raises:
            CallNotFoundError, NotParticipantError, InvalidRequestError
        """
        call_id = validate_call_id(call_id)

        async def attempt() -> CallSession:
            session = require_session(await self.store.find_session_by_id(call_id), call_id)
            require_participant(session, user_id)
            if apply_join(session, user_id, self.clock()):
                await self.store.save_session(session)
            return session

        session = await self._retry(attempt, f"join group call {call_id}")
        logger.info(
            f"[Lifecycle] User {user_id} joined call {call_id} "
            f"(status={session.status.value}, active={len(session.active_participants)})"
        )

        self._cancel_timer(call_id)

        self._broadcast(
            notify_participant_joined(self.dispatcher, session, user_id),
            f"participant_joined for call {call_id}",
        )
        return await self._details(session)

    async def leave(self, user_id: str, call_id: str) -> bool:
        """
        Leave a call.

        The participant update is a single conditional write retried on
        conflict. The last participant out ends the call; a call left with
        one participant gets an abandonment timer.

        Returns:
            True if the call is ended after this leave
        """
        call_id = validate_call_id(call_id)
        current = require_session(await self.store.find_session_by_id(call_id), call_id)
        require_participant(current, user_id)
        if current.is_ended:
            logger.info(f"[Lifecycle] Leave by {user_id} on ended call {call_id} ignored")
            return True

        left_at = self.clock()

        async def attempt() -> CallSession:
            updated = await self.store.conditional_update_participant(
                call_id,
                user_id,
                {"status": ParticipantStatus.LEFT, "left_at": left_at},
                from_statuses=LEAVING_STATUSES,
                remove_active=True,
            )
            if updated is None:
                raise CallNotFoundError(f"Group call {call_id} not found")
            return updated

        session = await self._retry(attempt, f"leave group call {call_id}")
        logger.info(
            f"[Lifecycle] User {user_id} left call {call_id} "
            f"({len(session.active_participants)} active remaining)"
        )

        if not session.is_ended and not session.active_participants:
            ended_session, _ = await self._end_call(
                call_id,
                lambda s, now: not s.active_participants,
            )
            if ended_session is not None:
                session = ended_session

        if session.is_ended:
            self._cancel_timer(call_id)
        elif len(session.active_participants) == 1:
            self._arm_abandonment_timer(call_id)
        else:
            self._cancel_timer(call_id)

        self._broadcast(
            notify_participant_left(self.dispatcher, session, user_id),
            f"participant_left for call {call_id}",
        )
        return session.is_ended

    # === Ending ===

    async def _replace_if_abandoned(self, session: CallSession) -> Optional[CallSession]:
        """
        End ``session`` if it is abandoned.

        Returns:
            The session if it is still live, None if it is ended now.
        """
        if not is_abandoned(session, self.clock(), self.ringing_stale_after_sec):
            return session

        age = int((self.clock() - session.started_at).total_seconds())
        logger.info(
            f"[Lifecycle] Auto-ending abandoned call {session.id} for room {session.room_id} "
            f"(status={session.status.value}, active={len(session.active_participants)}, age={age}s)"
        )
        fresh, _ = await self._end_call(
            session.id,
            lambda s, now: is_abandoned(s, now, self.ringing_stale_after_sec),
        )
        if fresh is None or fresh.is_ended:
            return None
        return fresh

    async def _end_call(
        self,
        call_id: str,
        should_end: EndPredicate
    ) -> Tuple[Optional[CallSession], bool]:
        """
        Re-read the session and end it if ``should_end`` still holds.

        Returns:
            Tuple of (latest session or None if gone, whether this call ended it)
        """
        async def attempt() -> Tuple[Optional[CallSession], bool]:
            session = await self.store.find_session_by_id(call_id)
            if session is None:
                return None, False
            now = self.clock()
            if session.is_ended or not should_end(session, now):
                return session, False
            finalize_ended(session, now)
            await self.store.save_session(session)
            return session, True

        session, ended = await self._retry(attempt, f"end group call {call_id}")
        if ended:
            self._cancel_timer(call_id)
            logger.info(f"[Lifecycle] Call {call_id} ended (duration={session.duration}s)")
        return session, ended

    async def _on_abandonment_timeout(self, call_id: str) -> None:
        session, ended = await self._end_call(
            call_id,
            lambda s, now: len(s.active_participants) <= 1,
        )
        if ended:
            self._broadcast(
                notify_call_ended(self.dispatcher, session, END_REASON_NO_PARTICIPANTS),
                f"call_ended for call {call_id}",
            )
        else:
            logger.info(f"[Lifecycle] Abandonment timer for call {call_id} found nothing to end")

    # === Timers ===

    def _arm_abandonment_timer(self, call_id: str) -> None:
        try:
            self.timers.schedule(
                call_id,
                self.abandonment_timeout_sec,
                lambda: self._on_abandonment_timeout(call_id),
            )
            logger.info(f"[Lifecycle] Abandonment timer armed for call {call_id} ({self.abandonment_timeout_sec}s)")
        except Exception as e:
            logger.warning(f"[Lifecycle] Failed to arm abandonment timer for call {call_id}: {e}")

    def _cancel_timer(self, call_id: str) -> None:
        try:
            if self.timers.cancel(call_id):
                logger.info(f"[Lifecycle] Abandonment timer cleared for call {call_id}")
        except Exception as e:
            logger.warning(f"[Lifecycle] Failed to clear abandonment timer for call {call_id}: {e}")

    # === Notifications ===

    def _broadcast(self, notification: Awaitable[int], description: str) -> None:
        """Deliver a broadcast in the background; the caller never waits on sockets."""
        task = asyncio.create_task(notification)
        self._notification_tasks.add(task)
        task.add_done_callback(lambda t: self._on_broadcast_done(t, description))

    def _on_broadcast_done(self, task: asyncio.Task, description: str) -> None:
        self._notification_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[Lifecycle] Broadcast of {description} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Lifecycle] Broadcast of {description} failed: {error}")

    @property
    def pending_notifications(self) -> int:
        return len(self._notification_tasks)

    async def drain_notifications(self) -> None:
        """Wait for every in-flight broadcast to finish."""
        while self._notification_tasks:
            await asyncio.gather(*list(self._notification_tasks), return_exceptions=True)

    # === Helpers ===

    async def _retry(self, operation, description: str):
        return await retry_on_conflict(
            operation,
            description=description,
            max_attempts=self.retry_max_attempts,
            backoff_sec=self.retry_backoff_sec,
        )

    @staticmethod
    def _identity_ids(session: CallSession) -> Iterable[str]:
        ids = {p.user_id for p in session.participants}
        ids.add(session.initiator_id)
        return ids

    async def _details(self, session: CallSession, room_name: Optional[str] = None) -> CallDetails:
        if room_name is None:
            room = await self.rooms.room_by_id(session.room_id)
            room_name = room.name if room else None
        users = await self.rooms.users_by_ids(self._identity_ids(session))
        return CallDetails(session=session, room_name=room_name, users=users)
