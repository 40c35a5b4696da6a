import asyncio
import pytest

from groupcall.services.core import SqlSessionStore
from groupcall.services.group_call import (
    CallStatus,
    GroupCallLifecycleManager,
    ParticipantStatus,
)
from tests.helpers import ROOM_ID, USER_A, USER_B, USER_C


class CountingStore(SqlSessionStore):
    """Counts committed writes that end a session."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.ending_writes = 0
        self.conflicts = 0

    async def save_session(self, session):
        try:
            await super().save_session(session)
        except Exception:
            self.conflicts += 1
            raise
        if session.status == CallStatus.ENDED:
            self.ending_writes += 1


@pytest.fixture
def counting_store(session_factory):
    return CountingStore(session_factory)


@pytest.fixture
async def racing_manager(counting_store, rooms, dispatcher, timers):
    lifecycle = GroupCallLifecycleManager(
        counting_store,
        rooms,
        dispatcher,
        timers,
        retry_max_attempts=10,
        retry_backoff_sec=0.005,
    )
    yield lifecycle
    await lifecycle.drain_notifications()


@pytest.mark.asyncio
async def test_concurrent_leaves_end_the_call_once(racing_manager, counting_store, timers):
    manager = racing_manager
    call = (await manager.initiate(USER_A, ROOM_ID, "video")).call.session
    await manager.join(USER_B, call.id)
    await manager.join(USER_C, call.id)

    results = await asyncio.gather(
        manager.leave(USER_A, call.id),
        manager.leave(USER_B, call.id),
        manager.leave(USER_C, call.id),
    )

    session = await counting_store.find_session_by_id(call.id)
    assert session.status == CallStatus.ENDED
    assert session.active_participants == []
    assert {p.status for p in session.participants} == {ParticipantStatus.LEFT}
    assert counting_store.ending_writes == 1
    # Only the leave that emptied the call reports it ended
    assert results.count(True) == 1
    assert not timers.pending(call.id)


@pytest.mark.asyncio
async def test_concurrent_joins_are_all_recorded(racing_manager, counting_store):
    manager = racing_manager
    call = (await manager.initiate(USER_A, ROOM_ID, "video")).call.session

    await asyncio.gather(
        manager.join(USER_B, call.id),
        manager.join(USER_C, call.id),
    )

    session = await counting_store.find_session_by_id(call.id)
    assert session.status == CallStatus.ACTIVE
    assert sorted(session.active_participants) == sorted([USER_A, USER_B, USER_C])
    assert session.get_participant(USER_B).status == ParticipantStatus.JOINED
    assert session.get_participant(USER_C).status == ParticipantStatus.JOINED


@pytest.mark.asyncio
async def test_join_racing_leave_keeps_both_updates(racing_manager, counting_store):
    manager = racing_manager
    call = (await manager.initiate(USER_A, ROOM_ID, "video")).call.session
    await manager.join(USER_B, call.id)

    await asyncio.gather(
        manager.join(USER_C, call.id),
        manager.leave(USER_B, call.id),
    )

    session = await counting_store.find_session_by_id(call.id)
    assert sorted(session.active_participants) == sorted([USER_A, USER_C])
    assert session.get_participant(USER_B).status == ParticipantStatus.LEFT
    assert session.status == CallStatus.ACTIVE
