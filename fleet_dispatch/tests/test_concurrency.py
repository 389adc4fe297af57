"""
Concurrency Tests.

Validates that racing transitions on the same trip are serialized and
that stale writes are rejected.
"""

import pytest
import asyncio
from sqlalchemy import update

from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.core.exceptions import ConflictError, InvalidStateError
from fleet_dispatch.app.models.notification import DriverRecipient, Notification, NotificationStatus
from fleet_dispatch.app.models.trip_enums import TripStatus
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services.notification_lifecycle import NotificationService
from fleet_dispatch.app.services.transition import run_transition
from fleet_dispatch.app.services.trip_lock import TRIP_LOCK_PREFIX, trip_lock


@pytest.mark.asyncio
async def test_concurrent_resolution_has_one_winner(db_session, session_factory, trip, driver, vehicle):
    """Accept and decline racing on one offer: exactly one is applied."""
    offer = await NotificationService.offer(
        db_session, "T1", DriverRecipient(driver_id=driver.id), vehicle.id, assigned_by="M1"
    )

    async def resolve(decision):
        async with session_factory() as session:
            return await NotificationService.resolve(session, offer.id, decision)

    results = await asyncio.gather(
        resolve("accepted"), resolve("declined"), return_exceptions=True
    )

    winners = [r for r in results if isinstance(r, Notification)]
    losers = [r for r in results if isinstance(r, (InvalidStateError, ConflictError))]
    assert len(winners) == 1
    assert len(losers) == 1

    async with session_factory() as session:
        stored = await session.get(Notification, offer.id)
        stored_trip = await repo.get_trip(session, "T1")
    assert stored.status == winners[0].status
    expected = TripStatus.ACCEPTED if stored.status == NotificationStatus.ACCEPTED else TripStatus.DECLINED
    assert stored_trip.status == expected


@pytest.mark.asyncio
async def test_stale_notification_write_is_a_conflict(db_session, session_factory, trip, driver, vehicle):
    offer = await NotificationService.offer(
        db_session, "T1", DriverRecipient(driver_id=driver.id), vehicle.id
    )

    # Another writer bumps the row version behind this session's back
    async with session_factory() as other:
        await other.execute(
            update(Notification)
            .where(Notification.id == offer.id)
            .values(read=True, version=Notification.version + 1)
        )
        await other.commit()

    async def mark_declined():
        offer.status = NotificationStatus.DECLINED

    with pytest.raises(ConflictError):
        await run_transition(db_session, "stale_write", [("notification", mark_declined)])


@pytest.mark.asyncio
async def test_trip_lock_times_out_while_held(redis_client_session, monkeypatch):
    monkeypatch.setattr(settings, "trip_lock_wait_seconds", 0.1)
    monkeypatch.setattr(settings, "trip_lock_poll_interval_seconds", 0.01)
    await redis_client_session.set(f"{TRIP_LOCK_PREFIX}T1", "someone-else")

    with pytest.raises(ConflictError):
        async with trip_lock("T1"):
            pass

    # Never released by a non-holder
    assert await redis_client_session.get(f"{TRIP_LOCK_PREFIX}T1") == "someone-else"


@pytest.mark.asyncio
async def test_trip_lock_is_released_after_error(redis_client_session):
    with pytest.raises(RuntimeError):
        async with trip_lock("T1"):
            assert await redis_client_session.exists(f"{TRIP_LOCK_PREFIX}T1") == 1
            raise RuntimeError("boom")

    assert await redis_client_session.exists(f"{TRIP_LOCK_PREFIX}T1") == 0


@pytest.mark.asyncio
async def test_expired_lock_does_not_release_new_holder(redis_client_session):
    key = f"{TRIP_LOCK_PREFIX}T1"

    async with trip_lock("T1"):
        # The TTL lapses and another request takes the lock mid-transition
        redis_client_session.store[key] = "next-holder"

    assert await redis_client_session.get(key) == "next-holder"
