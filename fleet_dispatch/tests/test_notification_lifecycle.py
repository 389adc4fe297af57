"""
Notification lifecycle tests.

Offers, TTL filtering, unread counts and resolution guards.
"""

import pytest
from datetime import timedelta
from sqlalchemy import select

from fleet_dispatch.app.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidStateError,
    ResourceNotFoundError,
)
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.audit_log import AuditLog
from fleet_dispatch.app.models.enums import DriverStatus
from fleet_dispatch.app.models.notification import (
    DriverRecipient,
    ManagerRecipient,
    Notification,
    NotificationStatus,
    NotificationType,
    RecipientType,
)
from fleet_dispatch.app.services.notification_lifecycle import NotificationService


async def _offer(db, trip, driver, vehicle, **kwargs):
    return await NotificationService.offer(
        db, trip.trip_id, DriverRecipient(driver_id=driver.id), vehicle.id, **kwargs
    )


@pytest.mark.asyncio
async def test_offer_creates_pending_notification_with_ttl(db_session, trip, driver, vehicle, parcels):
    notification = await _offer(db_session, trip, driver, vehicle, assigned_by="M1")

    assert notification.id is not None
    assert notification.recipient == DriverRecipient(driver_id=driver.id)
    assert notification.recipient_type == RecipientType.DRIVER
    assert notification.manager_id is None
    assert notification.type == NotificationType.TRIP_ASSIGNMENT
    assert notification.status == NotificationStatus.PENDING
    assert notification.read is False
    assert notification.expires_at - notification.created_at == timedelta(hours=24)

    # Defaults come from the trip
    assert notification.parcel_ids == [p.id for p in parcels]
    assert [loc["parcel_id"] for loc in notification.delivery_locations] == [p.id for p in parcels]
    assert notification.start_location["address"] == "Depot"

    await db_session.refresh(driver)
    assert driver.driver_status == DriverStatus.PENDING

    audit = await db_session.execute(select(AuditLog).where(AuditLog.action == "OFFER_CREATED"))
    assert audit.scalar_one().trip_id == "T1"


@pytest.mark.asyncio
async def test_second_live_driver_offer_conflicts(db_session, trip, driver, second_driver, vehicle):
    await _offer(db_session, trip, driver, vehicle)

    with pytest.raises(ConflictError):
        await _offer(db_session, trip, second_driver, vehicle)


@pytest.mark.asyncio
async def test_expired_offer_does_not_block_new_offer(db_session, trip, driver, second_driver, vehicle):
    first = await _offer(db_session, trip, driver, vehicle)
    first.expires_at = utc_now() - timedelta(minutes=1)
    await db_session.commit()

    second = await _offer(db_session, trip, second_driver, vehicle)
    assert second.status == NotificationStatus.PENDING


@pytest.mark.asyncio
async def test_offer_requires_existing_records(db_session, trip, driver, vehicle):
    with pytest.raises(ResourceNotFoundError):
        await NotificationService.offer(db_session, trip.trip_id, DriverRecipient(driver_id=999), vehicle.id)

    with pytest.raises(ResourceNotFoundError):
        await NotificationService.offer(db_session, trip.trip_id, DriverRecipient(driver_id=driver.id), 999)

    with pytest.raises(ResourceNotFoundError):
        await NotificationService.offer(db_session, "NOPE", DriverRecipient(driver_id=driver.id), vehicle.id)


@pytest.mark.asyncio
async def test_driver_offer_on_declined_trip_is_rejected(db_session, trip, driver, second_driver, vehicle):
    first = await _offer(db_session, trip, driver, vehicle, assigned_by="M1")
    await NotificationService.resolve(db_session, first.id, "declined")
    status_before = second_driver.driver_status

    with pytest.raises(InvalidStateError):
        await _offer(db_session, trip, second_driver, vehicle)

    await db_session.refresh(second_driver)
    assert second_driver.driver_status == status_before
    offers = await db_session.execute(
        select(Notification).where(Notification.driver_id == second_driver.id)
    )
    assert offers.scalars().all() == []


@pytest.mark.asyncio
async def test_manager_notification_has_no_driver_side_effect(db_session, trip, driver, vehicle):
    status_before = driver.driver_status

    notification = await NotificationService.offer(
        db_session, trip.trip_id, ManagerRecipient(manager_id="M1"), vehicle.id,
        type=NotificationType.TRIP_UPDATE,
    )

    assert notification.recipient == ManagerRecipient(manager_id="M1")
    assert notification.driver_id is None
    assert notification.message == "Trip T1 has been updated"
    await db_session.refresh(driver)
    assert driver.driver_status == status_before


@pytest.mark.asyncio
async def test_get_active_filters_expired_and_orders_newest_first(db_session, trip, driver, vehicle):
    old = await _offer(db_session, trip, driver, vehicle)
    old.status = NotificationStatus.DECLINED
    await db_session.commit()
    newer = await NotificationService.offer(
        db_session, trip.trip_id, DriverRecipient(driver_id=driver.id), vehicle.id,
        type=NotificationType.TRIP_UPDATE,
    )
    newer.created_at = old.created_at + timedelta(seconds=5)
    await db_session.commit()

    active = await NotificationService.get_active(db_session, DriverRecipient(driver_id=driver.id))
    assert [n.id for n in active] == [newer.id, old.id]

    newer.expires_at = utc_now() - timedelta(seconds=1)
    await db_session.commit()

    active = await NotificationService.get_active(db_session, DriverRecipient(driver_id=driver.id))
    assert [n.id for n in active] == [old.id]


@pytest.mark.asyncio
async def test_unread_count_and_mark_read(db_session, trip, driver, vehicle):
    notification = await _offer(db_session, trip, driver, vehicle)
    assert await NotificationService.unread_count(db_session, driver.id) == 1

    updated = await NotificationService.mark_read(db_session, notification.id)
    assert updated.read is True
    assert await NotificationService.unread_count(db_session, driver.id) == 0


@pytest.mark.asyncio
async def test_unread_count_ignores_expired(db_session, trip, driver, vehicle):
    notification = await _offer(db_session, trip, driver, vehicle)
    notification.expires_at = utc_now() - timedelta(seconds=1)
    await db_session.commit()

    assert await NotificationService.unread_count(db_session, driver.id) == 0


@pytest.mark.asyncio
async def test_resolve_rejects_unknown_decision(db_session, trip, driver, vehicle):
    notification = await _offer(db_session, trip, driver, vehicle)

    with pytest.raises(DomainValidationError):
        await NotificationService.resolve(db_session, notification.id, "maybe")


@pytest.mark.asyncio
async def test_resolve_missing_notification(db_session):
    with pytest.raises(ResourceNotFoundError):
        await NotificationService.resolve(db_session, 404, "accepted")


@pytest.mark.asyncio
async def test_resolve_expired_offer_marks_it_expired(db_session, trip, driver, vehicle):
    notification = await _offer(db_session, trip, driver, vehicle)
    notification.expires_at = utc_now() - timedelta(seconds=1)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await NotificationService.resolve(db_session, notification.id, "accepted")

    await db_session.refresh(notification)
    assert notification.status == NotificationStatus.EXPIRED
    await db_session.refresh(trip)
    assert trip.status.value == "pending"


@pytest.mark.asyncio
async def test_resolve_twice_is_rejected(db_session, trip, driver, vehicle):
    notification = await _offer(db_session, trip, driver, vehicle)
    await NotificationService.resolve(db_session, notification.id, "accepted")

    with pytest.raises(InvalidStateError):
        await NotificationService.resolve(db_session, notification.id, "declined")


@pytest.mark.asyncio
async def test_manager_notification_cannot_be_resolved(db_session, trip, vehicle):
    notification = await NotificationService.offer(
        db_session, trip.trip_id, ManagerRecipient(manager_id="M1"), vehicle.id
    )

    with pytest.raises(InvalidStateError):
        await NotificationService.resolve(db_session, notification.id, "accepted")


@pytest.mark.asyncio
async def test_expire_stale_marks_only_past_due_pending(db_session, trip, driver, vehicle):
    stale = await _offer(db_session, trip, driver, vehicle)
    stale.expires_at = utc_now() - timedelta(hours=1)
    await db_session.commit()
    live = await NotificationService.offer(
        db_session, trip.trip_id, ManagerRecipient(manager_id="M1"), vehicle.id
    )

    assert await NotificationService.expire_stale(db_session) == 1

    await db_session.refresh(stale)
    await db_session.refresh(live)
    assert stale.status == NotificationStatus.EXPIRED
    assert live.status == NotificationStatus.PENDING


@pytest.mark.asyncio
async def test_delete_resolved_notification(db_session, trip, driver, vehicle):
    offer = await _offer(db_session, trip, driver, vehicle, assigned_by="M1")
    await NotificationService.resolve(db_session, offer.id, "declined")

    await NotificationService.delete(db_session, offer.id)

    with pytest.raises(ResourceNotFoundError):
        await NotificationService.get(db_session, offer.id)
    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "NOTIFICATION_DELETED")
    )).scalars().all()
    assert [a.meta_data["notification_id"] for a in audit] == [offer.id]


@pytest.mark.asyncio
async def test_delete_refuses_live_pending_offer(db_session, trip, driver, vehicle):
    offer = await _offer(db_session, trip, driver, vehicle)

    with pytest.raises(InvalidStateError):
        await NotificationService.delete(db_session, offer.id)

    assert (await NotificationService.get(db_session, offer.id)).status == NotificationStatus.PENDING
    assert driver.driver_status == DriverStatus.PENDING

    with pytest.raises(ResourceNotFoundError):
        await NotificationService.delete(db_session, 9999)
