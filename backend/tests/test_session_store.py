import pytest
from datetime import datetime

from sqlalchemy import delete

from groupcall.models import GroupCall
from groupcall.services.group_call import (
    CallNotFoundError,
    CallSession,
    CallStatus,
    ParticipantStatus,
    WriteConflictError,
)
from groupcall.services.group_call.state import build_participants, new_session_channel
from tests.helpers import ROOM_ID, USER_A, USER_B, USER_C

T0 = datetime(2024, 5, 1, 9, 0, 0)


async def _create(store, room_id=ROOM_ID, started_at=T0):
    return await store.create_session(CallSession(
        room_id=room_id,
        session_channel=new_session_channel(),
        initiator_id=USER_A,
        participants=build_participants([USER_A, USER_B, USER_C], USER_A, started_at),
        active_participants=[USER_A],
        started_at=started_at,
    ))


@pytest.mark.asyncio
async def test_create_and_read_back(store):
    created = await _create(store)
    assert created.id
    assert created.version == 1

    loaded = await store.find_session_by_id(created.id)
    assert loaded.session_channel == created.session_channel
    assert loaded.status == CallStatus.RINGING
    assert loaded.active_participants == [USER_A]
    assert [p.user_id for p in loaded.participants] == [USER_A, USER_B, USER_C]
    assert loaded.get_participant(USER_A).status == ParticipantStatus.JOINED
    assert loaded.get_participant(USER_B).status == ParticipantStatus.INVITED


@pytest.mark.asyncio
async def test_find_session_by_id_missing(store):
    assert await store.find_session_by_id("nope") is None


@pytest.mark.asyncio
async def test_find_active_session_for_room_ignores_ended(store):
    created = await _create(store)
    assert (await store.find_active_session_for_room(ROOM_ID)).id == created.id

    created.status = CallStatus.ENDED
    created.ended_at = T0
    await store.save_session(created)

    assert await store.find_active_session_for_room(ROOM_ID) is None


@pytest.mark.asyncio
async def test_save_session_bumps_version(store):
    created = await _create(store)
    created.active_participants.append(USER_B)
    created.get_participant(USER_B).status = ParticipantStatus.JOINED

    await store.save_session(created)
    assert created.version == 2

    loaded = await store.find_session_by_id(created.id)
    assert loaded.version == 2
    assert loaded.active_participants == [USER_A, USER_B]
    assert loaded.get_participant(USER_B).status == ParticipantStatus.JOINED


@pytest.mark.asyncio
async def test_stale_write_raises_conflict(store):
    created = await _create(store)
    first = await store.find_session_by_id(created.id)
    second = await store.find_session_by_id(created.id)

    first.active_participants.append(USER_B)
    await store.save_session(first)

    second.active_participants.append(USER_C)
    with pytest.raises(WriteConflictError):
        await store.save_session(second)

    # The losing write left nothing behind
    loaded = await store.find_session_by_id(created.id)
    assert loaded.active_participants == [USER_A, USER_B]
    assert loaded.version == 2


@pytest.mark.asyncio
async def test_save_of_deleted_session_is_not_found(store, session_factory):
    created = await _create(store)
    async with session_factory() as db:
        await db.execute(delete(GroupCall).where(GroupCall.id == created.id))
        await db.commit()

    with pytest.raises(CallNotFoundError):
        await store.save_session(created)


@pytest.mark.asyncio
async def test_conditional_update_applies_from_allowed_status(store):
    created = await _create(store)
    left_at = datetime(2024, 5, 1, 9, 5, 0)

    updated = await store.conditional_update_participant(
        created.id,
        USER_A,
        {"status": ParticipantStatus.LEFT, "left_at": left_at},
        from_statuses=[ParticipantStatus.INVITED, ParticipantStatus.JOINED],
        remove_active=True,
    )

    assert updated.active_participants == []
    assert updated.get_participant(USER_A).status == ParticipantStatus.LEFT
    loaded = await store.find_session_by_id(created.id)
    assert loaded.get_participant(USER_A).left_at == left_at
    assert loaded.version == 2


@pytest.mark.asyncio
async def test_conditional_update_skips_fields_from_other_status(store):
    created = await _create(store)
    created.get_participant(USER_C).status = ParticipantStatus.DECLINED
    await store.save_session(created)

    updated = await store.conditional_update_participant(
        created.id,
        USER_C,
        {"status": "left"},
        from_statuses=["invited", "joined"],
        remove_active=True,
    )
    assert updated.get_participant(USER_C).status == ParticipantStatus.DECLINED


@pytest.mark.asyncio
async def test_conditional_update_adds_active_and_promotes(store):
    created = await _create(store)
    updated = await store.conditional_update_participant(
        created.id,
        USER_B,
        {"status": ParticipantStatus.JOINED, "joined_at": T0},
        add_active=True,
    )
    assert updated.active_participants == [USER_A, USER_B]
    assert updated.status == CallStatus.ACTIVE


@pytest.mark.asyncio
async def test_conditional_update_on_missing_targets(store):
    created = await _create(store)
    assert await store.conditional_update_participant("nope", USER_A, {}) is None
    assert await store.conditional_update_participant(created.id, "stranger", {}) is None


@pytest.mark.asyncio
async def test_conditional_update_leaves_ended_session_untouched(store):
    created = await _create(store)
    created.status = CallStatus.ENDED
    created.ended_at = T0
    await store.save_session(created)

    result = await store.conditional_update_participant(
        created.id, USER_A, {"status": ParticipantStatus.LEFT}, remove_active=True
    )
    assert result.status == CallStatus.ENDED
    assert result.version == 2
    assert result.active_participants == [USER_A]


@pytest.mark.asyncio
async def test_conditional_update_rejects_unknown_fields(store):
    created = await _create(store)
    with pytest.raises(ValueError):
        await store.conditional_update_participant(created.id, USER_A, {"nickname": "x"})


@pytest.mark.asyncio
async def test_pending_for_user(store):
    created = await _create(store)
    pending = await store.find_pending_for_user(USER_B)
    assert [s.id for s in pending] == [created.id]
    # The initiator has already joined
    assert await store.find_pending_for_user(USER_A) == []


@pytest.mark.asyncio
async def test_mark_notifications_sent_keeps_version(store):
    created = await _create(store)
    await store.mark_notifications_sent(created.id, {USER_B})

    loaded = await store.find_session_by_id(created.id)
    assert loaded.get_participant(USER_B).notification_sent is True
    assert loaded.get_participant(USER_C).notification_sent is False
    assert loaded.version == 1
