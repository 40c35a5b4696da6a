"""
Group Call Notifications

Builds event payloads and hands them to the notification dispatcher.
Every send is best-effort: failures are logged and never raised.
"""
import logging
from typing import Any, Dict, Mapping, Set, TYPE_CHECKING

from groupcall.config.constants import (
    EVENT_CALL_INVITE,
    EVENT_PARTICIPANT_JOINED,
    EVENT_PARTICIPANT_LEFT,
    EVENT_CALL_ENDED,
)
from groupcall.schemas.events import (
    CallInviteEvent,
    InitiatorInfo,
    InviteParticipant,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    CallEndedEvent,
)
from .models import CallSession, RoomInfo, UserInfo

if TYPE_CHECKING:
    from groupcall.services.protocols import NotificationDispatcher

logger = logging.getLogger(__name__)


def build_invite_payload(
    session: CallSession,
    room: RoomInfo,
    users: Mapping[str, UserInfo]
) -> Dict[str, Any]:
    """Invite payload; the roster excludes the initiator."""
    initiator = users.get(session.initiator_id)
    event = CallInviteEvent(
        call_id=session.id,
        session_channel=session.session_channel,
        room_id=session.room_id,
        room_name=room.name,
        call_type=session.call_type.value,
        initiator=InitiatorInfo(
            id=session.initiator_id,
            username=initiator.username if initiator else None,
            email=initiator.email if initiator else None,
        ),
        participants=[
            InviteParticipant(
                user_id=p.user_id,
                status=p.status.value,
                username=users[p.user_id].username if p.user_id in users else None,
            )
            for p in session.participants
            if p.user_id != session.initiator_id
        ],
    )
    return event.model_dump(mode="json")


async def send_call_invites(
    dispatcher: "NotificationDispatcher",
    session: CallSession,
    room: RoomInfo,
    users: Mapping[str, UserInfo]
) -> Set[str]:
    """
    Deliver call_invite to every invited member's connected sockets.

    Sockets subscribed to the room's channel are addressed individually so
    the initiator can be skipped. If nobody is subscribed to the room
    channel, each invitee is addressed through all of their sockets.

    Returns:
        Set of user ids that received at least one delivery
    """
    payload = build_invite_payload(session, room, users)
    invitees = [p.user_id for p in session.participants if p.user_id != session.initiator_id]
    notified: Set[str] = set()

    try:
        sockets = await dispatcher.list_connected_sockets_in_channel(session.room_id)
    except Exception as e:
        logger.error(f"[Notify] Could not list sockets in room {session.room_id}: {e}")
        sockets = []

    if sockets:
        logger.info(f"[Notify] Found {len(sockets)} socket(s) in room {session.room_id}, sending individually")
        for user_id in invitees:
            for socket_id, socket_user_id in sockets:
                if socket_user_id != user_id:
                    continue
                if await safe_emit_to_channel(dispatcher, socket_id, EVENT_CALL_INVITE, payload):
                    notified.add(user_id)
    else:
        logger.info(f"[Notify] No sockets in room {session.room_id}, addressing invitees directly")
        for user_id in invitees:
            if await safe_emit_to_user(dispatcher, user_id, EVENT_CALL_INVITE, payload):
                notified.add(user_id)

    logger.info(f"[Notify] Invited {len(notified)}/{len(invitees)} participants of call {session.id}")
    return notified


async def notify_participant_joined(
    dispatcher: "NotificationDispatcher",
    session: CallSession,
    user_id: str
) -> int:
    payload = ParticipantJoinedEvent(
        call_id=session.id,
        user_id=user_id,
        active_participants=list(session.active_participants),
    ).model_dump(mode="json")
    return await safe_emit_to_channel(dispatcher, session.session_channel, EVENT_PARTICIPANT_JOINED, payload)


async def notify_participant_left(
    dispatcher: "NotificationDispatcher",
    session: CallSession,
    user_id: str
) -> int:
    payload = ParticipantLeftEvent(
        call_id=session.id,
        user_id=user_id,
        active_participants=list(session.active_participants),
        call_ended=session.is_ended,
    ).model_dump(mode="json")
    return await safe_emit_to_channel(dispatcher, session.session_channel, EVENT_PARTICIPANT_LEFT, payload)


async def notify_call_ended(
    dispatcher: "NotificationDispatcher",
    session: CallSession,
    reason: str
) -> int:
    payload = CallEndedEvent(call_id=session.id, reason=reason).model_dump(mode="json")
    return await safe_emit_to_channel(dispatcher, session.session_channel, EVENT_CALL_ENDED, payload)


async def safe_emit_to_channel(
    dispatcher: "NotificationDispatcher",
    channel: str,
    event: str,
    payload: Dict[str, Any]
) -> int:
    try:
        return await dispatcher.emit_to_channel(channel, event, payload)
    except Exception as e:
        logger.error(f"[Notify] Error emitting {event} to channel {channel}: {e}")
        return 0


async def safe_emit_to_user(
    dispatcher: "NotificationDispatcher",
    user_id: str,
    event: str,
    payload: Dict[str, Any]
) -> int:
    try:
        return await dispatcher.emit_to_user(user_id, event, payload)
    except Exception as e:
        logger.error(f"[Notify] Error emitting {event} to user {user_id}: {e}")
        return 0
