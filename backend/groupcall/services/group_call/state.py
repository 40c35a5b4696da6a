"""
Group Call State Machine

Pure transition helpers over CallSession snapshots. Nothing here performs
I/O; callers persist the mutated snapshot themselves.

Participant statuses only move forward:
    invited -> joined | declined | missed
    joined  -> left
"""
import uuid
from datetime import datetime, UTC
from typing import Iterable, List

from groupcall.config.constants import SESSION_CHANNEL_PREFIX
from .models import CallSession, CallStatus, Participant, ParticipantStatus
from .exceptions import InvalidRequestError

TERMINAL_PARTICIPANT_STATUSES = frozenset({
    ParticipantStatus.DECLINED,
    ParticipantStatus.LEFT,
    ParticipantStatus.MISSED,
})

# Only a joined participant is marked left; an invited one stays invited
LEAVING_STATUSES = frozenset({ParticipantStatus.JOINED})


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database columns store."""
    return datetime.now(UTC).replace(tzinfo=None)


def new_session_channel() -> str:
    return f"{SESSION_CHANNEL_PREFIX}{uuid.uuid4()}"


def compute_duration(started_at: datetime, ended_at: datetime) -> int:
    return max(0, int((ended_at - started_at).total_seconds()))


def build_participants(member_ids: Iterable[str], initiator_id: str, now: datetime) -> List[Participant]:
    """One participant per room member; the initiator starts out joined."""
    participants = []
    seen = set()
    for member_id in member_ids:
        if member_id in seen:
            continue
        seen.add(member_id)
        if member_id == initiator_id:
            participants.append(Participant(
                user_id=member_id,
                status=ParticipantStatus.JOINED,
                joined_at=now,
            ))
        else:
            participants.append(Participant(user_id=member_id))
    return participants


def is_abandoned(session: CallSession, now: datetime, ringing_stale_after_sec: float) -> bool:
    """
    A live session is abandoned when nobody is connected, or when it has
    been ringing for longer than the staleness threshold.
    """
    if session.is_ended:
        return False
    if not session.active_participants:
        return True
    if session.status == CallStatus.RINGING:
        age = (now - session.started_at).total_seconds()
        return age > ringing_stale_after_sec
    return False


def sync_status(session: CallSession) -> None:
    """Keep ``active`` iff two or more participants are connected."""
    if session.is_ended:
        return
    if len(session.active_participants) >= 2:
        session.status = CallStatus.ACTIVE
    else:
        session.status = CallStatus.RINGING


def apply_join(session: CallSession, user_id: str, now: datetime) -> bool:
    """
    Mark ``user_id`` joined and connected.

    Returns:
        True if the snapshot changed, False for a repeated join.

    Raises:
        InvalidRequestError if the call ended or the participant already
        declined, left or missed it.
    """
    if session.is_ended:
        raise InvalidRequestError(f"Group call {session.id} has already ended")

    participant = session.get_participant(user_id)
    if participant is None:
        raise InvalidRequestError(f"User {user_id} is not a participant of call {session.id}")
    if participant.status in TERMINAL_PARTICIPANT_STATUSES:
        raise InvalidRequestError(
            f"User {user_id} can no longer join call {session.id} (status={participant.status.value})"
        )

    changed = False
    if participant.status != ParticipantStatus.JOINED:
        participant.status = ParticipantStatus.JOINED
        participant.joined_at = now
        changed = True
    if user_id not in session.active_participants:
        session.active_participants.append(user_id)
        changed = True

    sync_status(session)
    return changed


def apply_decline(session: CallSession, user_id: str) -> bool:
    """
    Mark an invited participant declined.

    A decline on an ended call, or by a participant who already joined or
    otherwise moved on, is a no-op.
    """
    if session.is_ended:
        return False
    participant = session.get_participant(user_id)
    if participant is None or participant.status != ParticipantStatus.INVITED:
        return False
    participant.status = ParticipantStatus.DECLINED
    return True


def finalize_ended(session: CallSession, now: datetime) -> bool:
    """
    Move the session to its terminal state.

    Invited participants become missed; joined participants without a
    ``left_at`` get the end time. Returns False if it was already ended.
    """
    if session.is_ended:
        return False

    ended_at = max(now, session.started_at)
    session.status = CallStatus.ENDED
    session.ended_at = ended_at
    session.duration = compute_duration(session.started_at, ended_at)

    for participant in session.participants:
        if participant.status == ParticipantStatus.INVITED:
            participant.status = ParticipantStatus.MISSED
        elif participant.status == ParticipantStatus.JOINED and participant.left_at is None:
            participant.left_at = ended_at

    return True
