"""
Call Event Relay

Republishes dispatched events over Redis pub/sub so that every API process
delivers them to its own sockets. Each process tags what it publishes with
its instance id and ignores its own messages, since it already delivered
them locally.
"""
import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, TYPE_CHECKING

from groupcall.config.constants import EVENT_RELAY_CHANNEL
from groupcall.config.redis import get_redis

if TYPE_CHECKING:
    from .manager import ConnectionManager

logger = logging.getLogger(__name__)

RedisFactory = Callable[[], Awaitable[Any]]


class CallEventRelay:
    """Cross-process fan-out of call events."""

    def __init__(
        self,
        connection_manager: "ConnectionManager",
        redis_factory: RedisFactory = get_redis,
        channel: str = EVENT_RELAY_CHANNEL,
    ):
        self.connection_manager = connection_manager
        self.redis_factory = redis_factory
        self.channel = channel
        self.instance_id = uuid.uuid4().hex

    async def publish(self, target_kind: str, target: str, event: str, payload: Dict[str, Any]) -> None:
        r = await self.redis_factory()
        message = json.dumps({
            "origin": self.instance_id,
            "target_kind": target_kind,
            "target": target,
            "event": event,
            "payload": payload,
        })
        await r.publish(self.channel, message)

    async def handle_message(self, raw: Any) -> int:
        """
        Deliver one relayed message to local sockets.

        Returns:
            Number of local sockets the event was sent to
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[Relay] Dropping malformed message: {e}")
            return 0

        if data.get("origin") == self.instance_id:
            return 0

        event = data.get("event")
        target = data.get("target")
        payload = data.get("payload") or {}
        if not event or not target:
            logger.warning(f"[Relay] Dropping message without event/target: {data}")
            return 0

        if data.get("target_kind") == "user":
            return await self.connection_manager.deliver_to_user(target, event, payload)
        return await self.connection_manager.deliver_to_channel(target, event, payload)

    async def run(self) -> None:
        """Background task: listen for relayed events until cancelled."""
        r = await self.redis_factory()
        pubsub = r.pubsub()
        await pubsub.subscribe(self.channel)

        logger.info(f"✅ Subscribed to call event relay channel {self.channel}")

        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await self.handle_message(message["data"])
                except Exception as e:
                    logger.error(f"[Relay] Error delivering relayed event: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Relay] Subscription error: {e}")
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
