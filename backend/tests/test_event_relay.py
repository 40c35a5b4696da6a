import asyncio
import json
import pytest
import fakeredis

from groupcall.services.connection import CallEventRelay, ConnectionManager
from tests.helpers import FakeWebSocket, wait_for

CHANNEL = "channel:test_group_call_events"


@pytest.fixture
def fake_redis():
    # Use a FakeServer so the connections emulate a real Redis server
    server = fakeredis.FakeServer()
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest.mark.asyncio
async def test_publish_writes_envelope(fake_redis):
    async def _get_fake():
        return fake_redis

    relay = CallEventRelay(ConnectionManager(), redis_factory=_get_fake, channel=CHANNEL)
    pubsub = fake_redis.pubsub()
    await pubsub.subscribe(CHANNEL)
    await pubsub.get_message(timeout=1.0)  # subscribe confirmation

    await relay.publish("channel", "group-call-1", "participant_joined", {"call_id": "c1"})

    message = None
    for _ in range(50):
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if message:
            break
    await pubsub.aclose()

    assert message is not None
    data = json.loads(message["data"])
    assert data == {
        "origin": relay.instance_id,
        "target_kind": "channel",
        "target": "group-call-1",
        "event": "participant_joined",
        "payload": {"call_id": "c1"},
    }


@pytest.mark.asyncio
async def test_handle_message_delivers_locally():
    manager = ConnectionManager()
    in_channel, by_user = FakeWebSocket(), FakeWebSocket()
    await manager.connect(in_channel, "user-1", channels=["group-call-1"])
    await manager.connect(by_user, "user-2")
    relay = CallEventRelay(manager, channel=CHANNEL)

    sent = await relay.handle_message(json.dumps({
        "origin": "another-process",
        "target_kind": "channel",
        "target": "group-call-1",
        "event": "participant_left",
        "payload": {"call_id": "c1", "call_ended": False},
    }))
    assert sent == 1
    assert in_channel.sent == [{"type": "participant_left", "call_id": "c1", "call_ended": False}]

    sent = await relay.handle_message(json.dumps({
        "origin": "another-process",
        "target_kind": "user",
        "target": "user-2",
        "event": "call_invite",
        "payload": {"call_id": "c1"},
    }).encode("utf-8"))
    assert sent == 1
    assert by_user.sent == [{"type": "call_invite", "call_id": "c1"}]


@pytest.mark.asyncio
async def test_handle_message_skips_own_and_malformed():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    await manager.connect(ws, "user-1", channels=["group-call-1"])
    relay = CallEventRelay(manager, channel=CHANNEL)

    own = json.dumps({
        "origin": relay.instance_id,
        "target_kind": "channel",
        "target": "group-call-1",
        "event": "participant_left",
        "payload": {},
    })
    assert await relay.handle_message(own) == 0
    assert await relay.handle_message("not json") == 0
    assert await relay.handle_message(json.dumps({"origin": "x", "target": "group-call-1"})) == 0
    assert ws.sent == []


@pytest.mark.asyncio
async def test_events_cross_processes(fake_redis):
    async def _get_fake():
        return fake_redis

    # Two API processes sharing one Redis
    manager_a, manager_b = ConnectionManager(), ConnectionManager()
    relay_a = CallEventRelay(manager_a, redis_factory=_get_fake, channel=CHANNEL)
    relay_b = CallEventRelay(manager_b, redis_factory=_get_fake, channel=CHANNEL)
    manager_a.attach_relay(relay_a)
    manager_b.attach_relay(relay_b)

    local, remote = FakeWebSocket(), FakeWebSocket()
    await manager_a.connect(local, "user-1", channels=["group-call-1"])
    await manager_b.connect(remote, "user-2", channels=["group-call-1"])

    tasks = [asyncio.create_task(relay_a.run()), asyncio.create_task(relay_b.run())]

    async def _subscribers():
        counts = await fake_redis.pubsub_numsub(CHANNEL)
        return counts[0][1] if counts else 0

    for _ in range(100):
        if await _subscribers() >= 2:
            break
        await asyncio.sleep(0.01)

    try:
        await manager_a.emit_to_channel("group-call-1", "participant_joined", {"call_id": "c1"})
        assert await wait_for(lambda: remote.sent)
        # Give a duplicate a chance to show up
        await asyncio.sleep(0.05)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    assert local.sent == [{"type": "participant_joined", "call_id": "c1"}]
    assert remote.sent == [{"type": "participant_joined", "call_id": "c1"}]
