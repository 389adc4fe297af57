"""
Redis connection for the per-trip transition locks.

The module-level `redis_client` is looked up at call time by the lock, so
tests can swap it for an in-memory double.
"""

import logging

import redis.asyncio as redis
from fleet_dispatch.app.core.config import settings

logger = logging.getLogger("fleet_dispatch.redis")


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
    socket_timeout=settings.redis_socket_timeout_seconds,
)


async def ping_redis() -> bool:
    """Health check; a lock store that cannot be reached reports False."""
    try:
        return bool(await redis_client.ping())
    except redis.RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
