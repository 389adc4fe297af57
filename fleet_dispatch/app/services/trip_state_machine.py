"""
Trip State Machine and Delivery Tracker.

States:
    pending -> accepted -> in_progress -> completed
    pending -> declined
    any non-terminal state -> cancelled

Acceptance and decline are driven by notification resolution (see the
assignment coordinator). This module owns trip creation, the start of the
journey, per-destination delivery updates with completion roll-up, and
the administrative status override.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidStateError,
    ResourceNotFoundError,
)
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.notification import NotificationStatus
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.trip_destination import TripDestination
from fleet_dispatch.app.models.trip_enums import (
    ACTIVE_TRIP_STATUSES,
    FINISHED_DELIVERY_STATUSES,
    TERMINAL_TRIP_STATUSES,
    DeliveryStatus,
    TripStatus,
)
from fleet_dispatch.app.models.vehicle import Vehicle
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services.assignment_coordinator import (
    apply_decline,
    release_driver,
    release_vehicle,
)
from fleet_dispatch.app.services import live_tracking
from fleet_dispatch.app.services.audit import AuditAction, log_event
from fleet_dispatch.app.services.notifier import Notifier, get_notifier
from fleet_dispatch.app.services.transition import Step, run_transition
from fleet_dispatch.app.services.trip_lock import trip_lock

logger = logging.getLogger("fleet_dispatch.trips")


# --- Creation ---

def _validate_trip_request(parcel_ids: Sequence[int], destinations: Sequence[Dict[str, Any]]) -> None:
    if not parcel_ids:
        raise DomainValidationError("A trip needs at least one parcel")
    if len(set(parcel_ids)) != len(parcel_ids):
        raise DomainValidationError(
            "Duplicate parcel ids in trip",
            details={"parcel_ids": list(parcel_ids)}
        )
    destination_parcels = [d["parcel_id"] for d in destinations]
    if len(destination_parcels) != len(parcel_ids) or set(destination_parcels) != set(parcel_ids):
        raise DomainValidationError(
            "Delivery destinations must cover each parcel exactly once",
            details={"parcel_ids": list(parcel_ids), "destination_parcel_ids": destination_parcels}
        )
    orders = [d["order"] for d in destinations]
    if len(set(orders)) != len(orders):
        raise DomainValidationError(
            "Delivery destination order values must be unique",
            details={"orders": orders}
        )


async def create_trip(
    db: AsyncSession,
    trip_id: str,
    driver_id: int,
    vehicle_id: int,
    parcel_ids: Sequence[int],
    destinations: Sequence[Dict[str, Any]],
    start_location: Optional[Dict[str, Any]] = None,
    assigned_by: Optional[str] = None,
    notes: Optional[str] = None,
    total_weight: Optional[float] = None,
) -> Trip:
    """
    Create a pending trip and reserve its driver, vehicle and parcels.

    `destinations` items carry parcel_id, latitude, longitude,
    location_name and order.

    Raises:
        DomainValidationError: no parcels, duplicates, or destinations that
            are not a permutation of the parcels
        ResourceNotFoundError: driver, vehicle or a parcel does not exist
        ConflictError: duplicate trip id, or a parcel already on an active trip
    """
    parcel_ids = list(parcel_ids)
    _validate_trip_request(parcel_ids, destinations)

    async with trip_lock(trip_id):
        if await repo.find_trip(db, trip_id) is not None:
            raise ConflictError(f"Trip {trip_id} already exists", details={"trip_id": trip_id})

        driver = await repo.get_driver(db, driver_id)
        vehicle = await repo.get_vehicle(db, vehicle_id)
        parcels = await repo.get_parcels(db, parcel_ids)

        busy_trip_ids = {p.trip_id for p in parcels if p.trip_id}
        if busy_trip_ids:
            result = await db.execute(
                select(Trip.trip_id).where(
                    Trip.trip_id.in_(busy_trip_ids),
                    Trip.status.in_(ACTIVE_TRIP_STATUSES),
                )
            )
            active = set(result.scalars().all())
            busy = [p.id for p in parcels if p.trip_id in active]
            if busy:
                raise ConflictError(
                    "Parcels are already on an active trip",
                    details={"parcel_ids": busy}
                )

        ordered = sorted(destinations, key=lambda d: d["order"])
        trip = Trip(
            trip_id=trip_id,
            driver_id=driver.id,
            vehicle_id=vehicle.id,
            parcel_ids=parcel_ids,
            assigned_by=assigned_by,
            status=TripStatus.PENDING,
            start_location=start_location,
            total_weight=total_weight if total_weight is not None else sum(p.weight_kg for p in parcels),
            notes=notes,
            destinations=[
                TripDestination(
                    parcel_id=d["parcel_id"],
                    sequence_number=d["order"],
                    latitude=d["latitude"],
                    longitude=d["longitude"],
                    location_name=d["location_name"],
                    delivery_status=DeliveryStatus.PENDING,
                )
                for d in ordered
            ],
        )

        async def insert_trip():
            db.add(trip)
            log_event(
                db, AuditAction.TRIP_CREATED, trip_id=trip_id,
                actor_id=assigned_by, actor_type="manager",
                metadata={"driver_id": driver.id, "vehicle_id": vehicle.id, "parcel_ids": parcel_ids}
            )

        async def reserve_parcels():
            for parcel in parcels:
                parcel.trip_id = trip_id
                parcel.assigned_vehicle_id = vehicle.id
                parcel.status = ParcelStatus.PENDING

        async def reserve_driver():
            driver.driver_status = DriverStatus.PENDING
            driver.is_available = False

        async def reserve_vehicle():
            vehicle.status = VehicleStatus.ASSIGNED

        await run_transition(db, "create_trip", [
            ("trip", insert_trip),
            ("parcels", reserve_parcels),
            ("driver", reserve_driver),
            ("vehicle", reserve_vehicle),
        ])

    return trip


# --- Execution ---

async def start_journey(db: AsyncSession, trip_id: str, notifier: Optional[Notifier] = None) -> Trip:
    """
    Start an accepted trip and open its live tracking record.

    Parcel recipients are sent a tracking message after commit.
    """
    notifier = notifier or get_notifier()

    async with trip_lock(trip_id):
        agg = await repo.get_trip_aggregate(db, trip_id)
        trip = agg.trip
        if trip.status != TripStatus.ACCEPTED:
            raise InvalidStateError(
                "Trip must be accepted to start",
                details={"trip_id": trip_id, "status": trip.status.value}
            )
        now = utc_now()

        async def update_trip():
            trip.status = TripStatus.IN_PROGRESS
            trip.started_at = now
            log_event(
                db, AuditAction.TRIP_STARTED, trip_id=trip_id,
                actor_id=trip.driver_id, actor_type="driver"
            )

        async def update_driver():
            _put_on_trip(trip, agg.driver, agg.vehicle)

        async def update_parcels():
            _dispatch_parcels(trip, agg.parcels)

        async def open_tracking():
            await live_tracking.open_ongoing_trip(db, trip, agg.parcels)

        await run_transition(db, "start_journey", [
            ("trip", update_trip),
            ("driver_vehicle", update_driver),
            ("parcels", update_parcels),
            ("tracking", open_tracking),
        ])

    await notifier.notify_parcel_recipients(db, trip, agg.parcels)
    return trip


async def update_delivery_status(
    db: AsyncSession,
    trip_id: str,
    parcel_id: int,
    new_status: DeliveryStatus,
    notes: Optional[str] = None,
) -> Trip:
    """
    Record the outcome of one delivery stop.

    Once every destination is delivered or failed the trip completes, its
    driver and vehicle are released and its tracking record is closed.
    """
    async with trip_lock(trip_id):
        trip = await repo.get_trip(db, trip_id)
        if trip.status != TripStatus.IN_PROGRESS:
            raise InvalidStateError(
                "Trip must be in progress to update deliveries",
                details={"trip_id": trip_id, "status": trip.status.value}
            )
        destination = trip.destination_for(parcel_id)
        if destination is None:
            raise ResourceNotFoundError("Delivery destination", parcel_id)
        now = utc_now()

        async def update_destination():
            destination.delivery_status = new_status
            if notes is not None:
                destination.notes = notes
            if new_status == DeliveryStatus.DELIVERED:
                destination.delivered_at = now
            log_event(
                db, AuditAction.DELIVERY_UPDATED, trip_id=trip_id,
                actor_id=trip.driver_id, actor_type="driver",
                metadata={"parcel_id": parcel_id, "status": new_status.value}
            )

        async def update_parcel():
            if new_status != DeliveryStatus.DELIVERED:
                return
            parcel = await db.get(Parcel, parcel_id)
            if parcel is not None:
                parcel.status = ParcelStatus.DELIVERED

        async def roll_up():
            if not all(d.delivery_status in FINISHED_DELIVERY_STATUSES for d in trip.destinations):
                return
            trip.status = TripStatus.COMPLETED
            trip.completed_at = now
            release_driver(await db.get(Driver, trip.driver_id))
            release_vehicle(await db.get(Vehicle, trip.vehicle_id))
            await live_tracking.close_ongoing_trip(db, trip_id)
            log_event(db, AuditAction.TRIP_COMPLETED, trip_id=trip_id, actor_type="system")
            logger.info("Trip %s completed", trip_id)

        await run_transition(db, "update_delivery_status", [
            ("destination", update_destination),
            ("parcel", update_parcel),
            ("completion", roll_up),
        ])

    return trip


# --- Administrative override ---

async def update_trip_status(
    db: AsyncSession,
    trip_id: str,
    new_status: TripStatus,
    actor_id: Optional[str] = None,
) -> Trip:
    """
    Force a trip into `new_status` with the side effects that state implies.

    Completed and cancelled trips are final.
    """
    async with trip_lock(trip_id):
        agg = await repo.get_trip_aggregate(db, trip_id)
        trip = agg.trip
        if trip.status in TERMINAL_TRIP_STATUSES:
            raise InvalidStateError(
                f"Trip {trip_id} is {trip.status.value} and cannot change status",
                details={"trip_id": trip_id, "status": trip.status.value}
            )
        previous = trip.status
        outstanding = []
        if new_status == TripStatus.CANCELLED:
            outstanding = await repo.get_pending_driver_offers(db, trip_id)
            outstanding += await repo.get_pending_declines(db, trip_id)

        async def update_trip():
            trip.status = new_status
            log_event(
                db, AuditAction.TRIP_STATUS_OVERRIDDEN, trip_id=trip_id,
                actor_id=actor_id, actor_type="manager",
                metadata={"from": previous.value, "to": new_status.value}
            )

        steps: List[Step] = [("trip", update_trip)]
        side_effects = _override_side_effects(db, trip, new_status, agg, outstanding)
        if side_effects is not None:
            steps.append(("side_effects", side_effects))

        await run_transition(db, "update_trip_status", steps)

    return trip


def _override_side_effects(
    db: AsyncSession,
    trip: Trip,
    new_status: TripStatus,
    agg: repo.TripAggregate,
    outstanding,
):
    now = utc_now()

    async def accepted():
        trip.accepted_at = now
        if agg.driver is not None:
            agg.driver.driver_status = DriverStatus.ACCEPTED
            agg.driver.current_trip_id = trip.trip_id
            agg.driver.is_available = False
        if agg.vehicle is not None:
            agg.vehicle.status = VehicleStatus.TRIP_CONFIRMED
            agg.vehicle.current_trip_id = trip.trip_id
            agg.vehicle.driver_id = trip.driver_id

    async def in_progress():
        trip.started_at = now
        _put_on_trip(trip, agg.driver, agg.vehicle)
        _dispatch_parcels(trip, agg.parcels)
        await live_tracking.open_ongoing_trip(db, trip, agg.parcels)

    async def completed():
        trip.completed_at = now
        release_driver(agg.driver)
        release_vehicle(agg.vehicle)
        await live_tracking.close_ongoing_trip(db, trip.trip_id)

    async def declined():
        apply_decline(trip, agg.driver, agg.vehicle, agg.parcels)
        await live_tracking.close_ongoing_trip(db, trip.trip_id)

    async def cancelled():
        release_driver(agg.driver)
        release_vehicle(agg.vehicle)
        for parcel in agg.parcels:
            parcel.status = ParcelStatus.PENDING
            parcel.trip_id = None
            parcel.assigned_driver_id = None
            parcel.assigned_vehicle_id = None
        for notification in outstanding:
            notification.status = NotificationStatus.EXPIRED
            notification.read = True
        await live_tracking.close_ongoing_trip(db, trip.trip_id)

    return {
        TripStatus.ACCEPTED: accepted,
        TripStatus.IN_PROGRESS: in_progress,
        TripStatus.COMPLETED: completed,
        TripStatus.DECLINED: declined,
        TripStatus.CANCELLED: cancelled,
    }.get(new_status)


def _put_on_trip(trip: Trip, driver: Optional[Driver], vehicle: Optional[Vehicle]) -> None:
    if driver is not None:
        driver.driver_status = DriverStatus.ON_TRIP
        driver.current_trip_id = trip.trip_id
        driver.is_available = False
    if vehicle is not None:
        vehicle.status = VehicleStatus.ON_TRIP
        vehicle.current_trip_id = trip.trip_id
        vehicle.driver_id = trip.driver_id


def _dispatch_parcels(trip: Trip, parcels: List[Parcel]) -> None:
    for parcel in parcels:
        parcel.status = ParcelStatus.IN_TRANSIT
    for destination in trip.destinations:
        if destination.delivery_status == DeliveryStatus.PENDING:
            destination.delivery_status = DeliveryStatus.IN_TRANSIT


# --- Reads ---

async def list_trips(
    db: AsyncSession,
    status: Optional[TripStatus] = None,
    driver_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Trip]:
    query = select(Trip)
    if status is not None:
        query = query.where(Trip.status == status)
    if driver_id is not None:
        query = query.where(Trip.driver_id == driver_id)
    query = query.order_by(desc(Trip.created_at), desc(Trip.id)).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_active_trip_for_driver(db: AsyncSession, driver_id: int) -> Trip:
    """Most recent pending, accepted or in-progress trip of a driver."""
    await repo.get_driver(db, driver_id)
    result = await db.execute(
        select(Trip)
        .where(Trip.driver_id == driver_id, Trip.status.in_(ACTIVE_TRIP_STATUSES))
        .order_by(desc(Trip.assigned_at), desc(Trip.id))
        .limit(1)
    )
    trip = result.scalar_one_or_none()
    if trip is None:
        raise ResourceNotFoundError("Active trip for driver", driver_id)
    return trip


async def get_declined_parcels(db: AsyncSession) -> List[Parcel]:
    """Parcels of declined trips, waiting for a new driver."""
    result = await db.execute(
        select(Parcel)
        .join(Trip, Trip.trip_id == Parcel.trip_id)
        .where(Trip.status == TripStatus.DECLINED)
        .order_by(Parcel.trip_id, Parcel.id)
    )
    return list(result.scalars().all())
