"""
Fleet repository.

Read helpers for the five dispatch records. Lookups raise
ResourceNotFoundError instead of returning None, and the hydrated trip
aggregate is assembled explicitly rather than through ORM joins.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.exceptions import ResourceNotFoundError
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.notification import (
    Notification,
    NotificationStatus,
    NotificationType,
    RecipientType,
)
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.vehicle import Vehicle


@dataclass
class TripAggregate:
    """A trip together with its driver, vehicle and parcels."""
    trip: Trip
    driver: Optional[Driver]
    vehicle: Optional[Vehicle]
    parcels: List[Parcel] = field(default_factory=list)


async def get_driver(db: AsyncSession, driver_id: int) -> Driver:
    driver = await db.get(Driver, driver_id)
    if driver is None:
        raise ResourceNotFoundError("Driver", driver_id)
    return driver


async def get_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle:
    vehicle = await db.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise ResourceNotFoundError("Vehicle", vehicle_id)
    return vehicle


async def find_trip(db: AsyncSession, trip_id: str) -> Optional[Trip]:
    result = await db.execute(select(Trip).where(Trip.trip_id == trip_id))
    return result.scalar_one_or_none()


async def get_trip(db: AsyncSession, trip_id: str) -> Trip:
    trip = await find_trip(db, trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


async def get_notification(db: AsyncSession, notification_id: int) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None:
        raise ResourceNotFoundError("Notification", notification_id)
    return notification


async def get_parcel(db: AsyncSession, parcel_id: int) -> Parcel:
    parcel = await db.get(Parcel, parcel_id)
    if parcel is None:
        raise ResourceNotFoundError("Parcel", parcel_id)
    return parcel


async def get_parcels(db: AsyncSession, parcel_ids: Iterable[int]) -> List[Parcel]:
    """
    Load parcels in the order of `parcel_ids`.

    Raises:
        ResourceNotFoundError: naming the first id that does not exist
    """
    ids = list(parcel_ids)
    if not ids:
        return []
    result = await db.execute(select(Parcel).where(Parcel.id.in_(ids)))
    by_id = {parcel.id: parcel for parcel in result.scalars().all()}
    for parcel_id in ids:
        if parcel_id not in by_id:
            raise ResourceNotFoundError("Parcel", parcel_id)
    return [by_id[parcel_id] for parcel_id in ids]


async def get_trip_aggregate(db: AsyncSession, trip_id: str) -> TripAggregate:
    """
    Hydrate a trip with its driver, vehicle and parcels.

    Referenced records that no longer exist come back as None / are
    skipped; only the trip itself is required.
    """
    trip = await get_trip(db, trip_id)
    driver = await db.get(Driver, trip.driver_id)
    vehicle = await db.get(Vehicle, trip.vehicle_id)

    parcels: List[Parcel] = []
    if trip.parcel_ids:
        result = await db.execute(select(Parcel).where(Parcel.id.in_(trip.parcel_ids)))
        by_id = {parcel.id: parcel for parcel in result.scalars().all()}
        parcels = [by_id[pid] for pid in trip.parcel_ids if pid in by_id]

    return TripAggregate(trip=trip, driver=driver, vehicle=vehicle, parcels=parcels)


async def get_pending_driver_offers(
    db: AsyncSession,
    trip_id: str,
    active_only: bool = False
) -> List[Notification]:
    """
    Pending driver-type notifications of a trip.

    With `active_only`, offers past their expiry are left out.
    """
    query = select(Notification).where(
        Notification.trip_id == trip_id,
        Notification.recipient_type == RecipientType.DRIVER,
        Notification.status == NotificationStatus.PENDING,
    )
    if active_only:
        query = query.where(Notification.expires_at > utc_now())
    result = await db.execute(query.order_by(Notification.id))
    return list(result.scalars().all())


async def get_pending_declines(db: AsyncSession, trip_id: str) -> List[Notification]:
    """Manager `driver_declined` notifications of a trip that were not acted on."""
    result = await db.execute(
        select(Notification).where(
            Notification.trip_id == trip_id,
            Notification.recipient_type == RecipientType.MANAGER,
            Notification.type == NotificationType.DRIVER_DECLINED,
            Notification.status == NotificationStatus.PENDING,
        ).order_by(Notification.id)
    )
    return list(result.scalars().all())
