"""Shared Redis client for the event relay."""
from typing import Optional
import logging
import redis.asyncio as redis
from groupcall.config.settings import settings

logger = logging.getLogger(__name__)

_redis: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Process-wide client, created on first use. Replies are decoded to str."""
    global _redis
    if _redis is None:
        _redis = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        logger.info(f"Redis client created for {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return _redis


async def close_redis():
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
