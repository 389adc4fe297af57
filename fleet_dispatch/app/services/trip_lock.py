"""
Per-trip transition lock using Redis.

Serializes mutating transitions on the same trip across processes with
redis-py's token lock: acquisition is `SET NX PX`, release is an atomic
compare-and-delete, so an expired holder can never free a lock that
another request has taken since.
"""

import logging
from contextlib import asynccontextmanager

from redis.exceptions import LockError

import fleet_dispatch.app.core.redis_client as redis_client_module
from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.core.exceptions import ConflictError

logger = logging.getLogger("fleet_dispatch.locks")

# Redis key prefix for trip locks
TRIP_LOCK_PREFIX = "trip-lock:"


@asynccontextmanager
async def trip_lock(trip_id: str):
    """
    Hold the transition lock of `trip_id` for the duration of the block.

    Raises:
        ConflictError: if the lock could not be taken within the configured wait
    """
    lock = redis_client_module.redis_client.lock(
        f"{TRIP_LOCK_PREFIX}{trip_id}",
        timeout=settings.trip_lock_ttl_seconds,
        sleep=settings.trip_lock_poll_interval_seconds,
        blocking_timeout=settings.trip_lock_wait_seconds,
        thread_local=False,
    )
    if not await lock.acquire():
        raise ConflictError(
            f"Trip {trip_id} is being modified by another request",
            details={"trip_id": trip_id}
        )

    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            # TTL ran out while held; the key is no longer ours to delete
            logger.warning("Trip lock for %s expired before release", trip_id)
