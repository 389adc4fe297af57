"""
Live tracking of trips on the road.

The ongoing record is opened by the journey start and closed by
completion or an override, both inside the owning transition. Location
pings write only the ongoing record; the SOS flag lives on the trip and
takes the trip lock.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, delete, desc
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.ongoing_trip import OngoingTrip
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.trip_enums import TERMINAL_TRIP_STATUSES, TripStatus
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services.audit import AuditAction, log_event
from fleet_dispatch.app.services.transition import run_transition
from fleet_dispatch.app.services.trip_lock import trip_lock

logger = logging.getLogger("fleet_dispatch.tracking")

SOS_DEFAULT_ADDRESS = "SOS Reported Location"
LIVE_TRIP_STATUSES = (TripStatus.ACCEPTED, TripStatus.IN_PROGRESS)


@dataclass
class LiveTrip:
    trip: Trip
    ongoing: Optional[OngoingTrip]


async def find_ongoing_trip(db: AsyncSession, trip_id: str) -> Optional[OngoingTrip]:
    result = await db.execute(select(OngoingTrip).where(OngoingTrip.trip_id == trip_id))
    return result.scalar_one_or_none()


async def get_ongoing_trip(db: AsyncSession, trip_id: str) -> OngoingTrip:
    ongoing = await find_ongoing_trip(db, trip_id)
    if ongoing is None:
        raise ResourceNotFoundError("Ongoing trip", trip_id)
    return ongoing


async def open_ongoing_trip(db: AsyncSession, trip: Trip, parcels: Sequence[Parcel]) -> OngoingTrip:
    """Create or reset the ongoing record of a trip whose journey starts now."""
    ongoing = await find_ongoing_trip(db, trip.trip_id)
    if ongoing is None:
        ongoing = OngoingTrip(trip_id=trip.trip_id)
        db.add(ongoing)
    ongoing.tracking_id = parcels[0].tracking_id if parcels else "N/A"
    ongoing.driver_id = trip.driver_id
    ongoing.vehicle_id = trip.vehicle_id
    ongoing.status = "in_transit"
    ongoing.progress = 0
    ongoing.started_at = trip.started_at or utc_now()
    if trip.start_location:
        ongoing.last_known_location = dict(trip.start_location)
    return ongoing


async def close_ongoing_trip(db: AsyncSession, trip_id: str) -> None:
    await db.execute(delete(OngoingTrip).where(OngoingTrip.trip_id == trip_id))


async def update_location(
    db: AsyncSession,
    trip_id: str,
    latitude: float,
    longitude: float,
    address: Optional[str] = None,
    progress: Optional[float] = None,
) -> OngoingTrip:
    """
    Record the latest position of a trip on the road.

    Raises:
        ResourceNotFoundError: the trip has no ongoing record
        ConflictError: the record was closed while the ping was written
    """
    ongoing = await get_ongoing_trip(db, trip_id)

    async def record_position():
        ongoing.last_known_location = {
            "latitude": latitude,
            "longitude": longitude,
            "address": address,
        }
        if progress is not None:
            ongoing.progress = progress

    await run_transition(db, "update_location", [("ongoing", record_position)])
    return ongoing


async def list_ongoing_trips(db: AsyncSession) -> List[LiveTrip]:
    """Accepted and in-progress trips with their live data, newest first."""
    result = await db.execute(
        select(Trip, OngoingTrip)
        .outerjoin(OngoingTrip, OngoingTrip.trip_id == Trip.trip_id)
        .where(Trip.status.in_(LIVE_TRIP_STATUSES))
        .order_by(desc(Trip.updated_at), desc(Trip.id))
    )
    return [LiveTrip(trip=trip, ongoing=ongoing) for trip, ongoing in result.all()]


async def toggle_sos(
    db: AsyncSession,
    trip_id: str,
    sos: bool,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    address: Optional[str] = None,
) -> Trip:
    """
    Raise or clear the SOS flag of a trip.

    When raised with coordinates, they become the ongoing record's last
    known location.

    Raises:
        ResourceNotFoundError: trip does not exist
        InvalidStateError: the trip is completed or cancelled
    """
    async with trip_lock(trip_id):
        trip = await repo.get_trip(db, trip_id)
        if trip.status in TERMINAL_TRIP_STATUSES:
            raise InvalidStateError(
                f"Trip {trip_id} is {trip.status.value}",
                details={"trip_id": trip_id, "status": trip.status.value}
            )
        ongoing = await find_ongoing_trip(db, trip_id)

        async def update_trip():
            trip.sos = sos
            log_event(
                db, AuditAction.SOS_TOGGLED, trip_id=trip_id,
                actor_id=trip.driver_id, actor_type="driver",
                metadata={"sos": sos, "latitude": latitude, "longitude": longitude}
            )

        async def record_position():
            ongoing.last_known_location = {
                "latitude": latitude,
                "longitude": longitude,
                "address": address or SOS_DEFAULT_ADDRESS,
            }

        steps = [("trip", update_trip)]
        if sos and ongoing is not None and latitude is not None and longitude is not None:
            steps.append(("location", record_position))
        await run_transition(db, "toggle_sos", steps)

    if sos:
        logger.warning("SOS raised on trip %s", trip_id)
    return trip
