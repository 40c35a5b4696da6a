import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from groupcall.models import Room, RoomMember, User

USER_A = "user-a"
USER_B = "user-b"
USER_C = "user-c"
# Exists but is not a member of the room
USER_D = "user-d"
ROOM_ID = "room-r"
ROOM_NAME = "Weekly sync"


async def seed_room(session_factory):
    """Room R with members A, B and C (in that order) and an outsider D."""
    async with session_factory() as db:
        for user_id, username in (
            (USER_A, "alice"),
            (USER_B, "bob"),
            (USER_C, "carol"),
            (USER_D, "dave"),
        ):
            db.add(User(id=user_id, username=username, email=f"{username}@example.com"))
        db.add(Room(id=ROOM_ID, name=ROOM_NAME))
        await db.flush()
        base = datetime(2024, 1, 1, 12, 0, 0)
        for offset, user_id in enumerate((USER_A, USER_B, USER_C)):
            db.add(RoomMember(room_id=ROOM_ID, user_id=user_id, joined_at=base + timedelta(minutes=offset)))
        await db.commit()


class RecordingDispatcher:
    """NotificationDispatcher that records what it was asked to send."""

    def __init__(self, sockets: Optional[List[Tuple[str, str]]] = None, fail: bool = False):
        self.sockets = sockets or []
        self.fail = fail
        self.channel_events: List[Tuple[str, str, Dict[str, Any]]] = []
        self.user_events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def emit_to_channel(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        if self.fail:
            raise ConnectionError("dispatcher down")
        self.channel_events.append((channel, event, payload))
        return 1

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        if self.fail:
            raise ConnectionError("dispatcher down")
        self.user_events.append((user_id, event, payload))
        return 1

    async def list_connected_sockets_in_channel(self, channel: str) -> List[Tuple[str, str]]:
        if self.fail:
            raise ConnectionError("dispatcher down")
        return list(self.sockets)

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [p for _, e, p in self.channel_events + self.user_events if e == name]


class FakeWebSocket:
    """Stands in for a Starlette WebSocket; records sent JSON."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        # Seconds each send stalls, like a client that stopped reading
        self.delay = delay

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


async def wait_for(predicate, timeout: float = 1.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
