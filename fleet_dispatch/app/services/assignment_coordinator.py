"""
Assignment Coordinator.

Fans out every notification transition to the trip, driver, vehicle and
parcel records it affects. Writes are expressed as named steps and
applied by the transition runner inside one database transaction, so
the cross-entity invariants hold after every committed transition:

- accepted / in-progress trips are reflected on their driver and vehicle
- declined trips have no driver ownership left on vehicle or parcels
- a trip has at most one live pending driver offer
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.core.exceptions import InvalidStateError
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.notification import (
    DriverRecipient,
    ManagerRecipient,
    Notification,
    NotificationStatus,
    NotificationType,
    Recipient,
    RecipientType,
)
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.trip_enums import TripStatus
from fleet_dispatch.app.models.vehicle import Vehicle
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services.audit import AuditAction, log_event
from fleet_dispatch.app.services.notifier import Notifier, get_notifier
from fleet_dispatch.app.services.transition import Step, run_transition
from fleet_dispatch.app.services.trip_lock import trip_lock

logger = logging.getLogger("fleet_dispatch.assignment")


@dataclass
class TransitionPlan:
    """Ordered steps of a transition plus the notifications it creates."""
    steps: List[Step] = field(default_factory=list)
    created: List[Notification] = field(default_factory=list)


# --- Shared writes ---

def build_notification(
    recipient: Recipient,
    trip: Trip,
    vehicle_id: int,
    type: NotificationType,
    message: str,
    parcel_ids: Optional[Sequence[int]] = None,
    assigned_by: Optional[str] = None,
    declined_driver_id: Optional[int] = None,
    delivery_locations: Optional[List[Dict[str, Any]]] = None,
    start_location: Optional[Dict[str, Any]] = None,
) -> Notification:
    """
    Build a pending notification about `trip`.

    Parcel ids, delivery locations and start location default to the
    trip's own. Expiry is creation time plus the configured TTL.
    """
    now = utc_now()
    notification = Notification(
        trip_id=trip.trip_id,
        vehicle_id=vehicle_id,
        parcel_ids=list(parcel_ids if parcel_ids is not None else trip.parcel_ids or []),
        type=type,
        message=message,
        delivery_locations=(
            delivery_locations if delivery_locations is not None
            else [d.as_location() for d in trip.destinations]
        ),
        start_location=start_location if start_location is not None else trip.start_location,
        declined_driver_id=declined_driver_id,
        assigned_by=assigned_by,
        status=NotificationStatus.PENDING,
        read=False,
        created_at=now,
        expires_at=now + timedelta(hours=settings.notification_ttl_hours),
    )
    notification.recipient = recipient
    return notification


def release_driver(driver: Optional[Driver]) -> None:
    """Return a driver to the available pool. `is_available` belongs to the punch clock."""
    if driver is None:
        return
    driver.driver_status = DriverStatus.AVAILABLE
    driver.current_trip_id = None


def release_vehicle(vehicle: Optional[Vehicle]) -> None:
    """Return a vehicle to its available (active) state."""
    if vehicle is None:
        return
    vehicle.status = VehicleStatus.ACTIVE
    vehicle.current_trip_id = None
    vehicle.driver_id = None


def apply_decline(trip: Trip, driver: Optional[Driver], vehicle: Optional[Vehicle], parcels: List[Parcel]) -> None:
    """
    Writes of a driver decline.

    The vehicle stays reserved to the trip but loses its driver; parcels
    wait for reassignment with their vehicle kept.
    """
    trip.status = TripStatus.DECLINED
    if vehicle is not None:
        vehicle.status = VehicleStatus.ASSIGNED
        vehicle.current_trip_id = None
        vehicle.driver_id = None
    release_driver(driver)
    for parcel in parcels:
        parcel.status = ParcelStatus.PENDING
        parcel.assigned_driver_id = None


def _reserve_for_driver(trip: Trip, driver: Driver, vehicle: Vehicle, assigned_by: Optional[str] = None) -> None:
    """Put a trip back into the offer cycle for `driver`."""
    now = utc_now()
    trip.driver_id = driver.id
    trip.vehicle_id = vehicle.id
    trip.status = TripStatus.PENDING
    trip.assigned_at = now
    trip.accepted_at = None
    if assigned_by is not None:
        trip.assigned_by = assigned_by


def _assign_parcels(trip: Trip, driver: Driver, vehicle: Vehicle, parcels: List[Parcel]) -> None:
    for parcel in parcels:
        parcel.trip_id = trip.trip_id
        parcel.assigned_driver_id = driver.id
        parcel.assigned_vehicle_id = vehicle.id
        parcel.status = ParcelStatus.PENDING


async def _swap_vehicle(db: AsyncSession, old_vehicle_id: Optional[int], vehicle: Vehicle) -> None:
    if old_vehicle_id is not None and old_vehicle_id != vehicle.id:
        release_vehicle(await db.get(Vehicle, old_vehicle_id))
    vehicle.status = VehicleStatus.ASSIGNED
    vehicle.current_trip_id = None
    vehicle.driver_id = None


async def _load_offer_context(db: AsyncSession, offer: Notification):
    trip = await repo.get_trip(db, offer.trip_id)
    if trip.status != TripStatus.PENDING:
        raise InvalidStateError(
            f"Trip {trip.trip_id} is {trip.status.value}, expected pending",
            details={"trip_id": trip.trip_id, "status": trip.status.value}
        )
    driver = await repo.get_driver(db, offer.driver_id)
    vehicle = await repo.get_vehicle(db, offer.vehicle_id)
    parcels = await repo.get_parcels(db, trip.parcel_ids or [])
    return trip, driver, vehicle, parcels


# --- Offer resolution ---

async def plan_accept(db: AsyncSession, offer: Notification) -> TransitionPlan:
    """
    Writes of a driver accepting `offer`. The trip must still be pending.
    """
    trip, driver, vehicle, parcels = await _load_offer_context(db, offer)
    now = utc_now()

    async def update_trip():
        trip.status = TripStatus.ACCEPTED
        trip.accepted_at = now
        trip.driver_id = driver.id
        trip.vehicle_id = vehicle.id

    async def update_vehicle():
        vehicle.status = VehicleStatus.TRIP_CONFIRMED
        vehicle.current_trip_id = trip.trip_id
        vehicle.driver_id = driver.id

    async def update_driver():
        driver.driver_status = DriverStatus.ACCEPTED
        driver.current_trip_id = trip.trip_id
        driver.is_available = False

    async def update_parcels():
        for parcel in parcels:
            parcel.status = ParcelStatus.CONFIRMED
            parcel.trip_id = trip.trip_id
            parcel.assigned_driver_id = driver.id
            parcel.assigned_vehicle_id = vehicle.id
        log_event(
            db, AuditAction.OFFER_ACCEPTED, trip_id=trip.trip_id,
            actor_id=driver.id, actor_type="driver",
            metadata={"notification_id": offer.id, "vehicle_id": vehicle.id}
        )

    return TransitionPlan(steps=[
        ("trip", update_trip),
        ("vehicle", update_vehicle),
        ("driver", update_driver),
        ("parcels", update_parcels),
    ])


async def plan_decline(db: AsyncSession, offer: Notification) -> TransitionPlan:
    """
    Writes of a driver declining `offer`. When a manager assigned the
    trip, they get a `driver_declined` notification to act on.
    """
    trip, driver, vehicle, parcels = await _load_offer_context(db, offer)
    plan = TransitionPlan()

    async def update_trip():
        trip.status = TripStatus.DECLINED

    async def update_vehicle():
        vehicle.status = VehicleStatus.ASSIGNED
        vehicle.current_trip_id = None
        vehicle.driver_id = None

    async def update_driver():
        release_driver(driver)

    async def update_parcels():
        for parcel in parcels:
            parcel.status = ParcelStatus.PENDING
            parcel.assigned_driver_id = None
        log_event(
            db, AuditAction.OFFER_DECLINED, trip_id=trip.trip_id,
            actor_id=driver.id, actor_type="driver",
            metadata={"notification_id": offer.id}
        )

    async def notify_manager():
        manager_notification = build_notification(
            ManagerRecipient(manager_id=offer.assigned_by),
            trip,
            vehicle_id=offer.vehicle_id,
            type=NotificationType.DRIVER_DECLINED,
            message=f"Driver {driver.name} declined trip {trip.trip_id}",
            parcel_ids=offer.parcel_ids,
            declined_driver_id=driver.id,
            assigned_by=offer.assigned_by,
            delivery_locations=offer.delivery_locations,
            start_location=offer.start_location,
        )
        db.add(manager_notification)
        plan.created.append(manager_notification)

    plan.steps = [
        ("trip", update_trip),
        ("vehicle", update_vehicle),
        ("driver", update_driver),
        ("parcels", update_parcels),
    ]
    if offer.assigned_by:
        plan.steps.append(("manager_notification", notify_manager))
    return plan


# --- Reassignment ---

async def reassign_driver(
    db: AsyncSession,
    manager_notification_id: int,
    new_driver_id: int,
    vehicle_id: int,
    notifier: Optional[Notifier] = None,
) -> Notification:
    """
    Act on a `driver_declined` notification by offering the trip to
    another driver.

    Returns:
        The new `reassign_driver` offer
    """
    notifier = notifier or get_notifier()
    manager_notification = await repo.get_notification(db, manager_notification_id)
    _require_pending_decline(manager_notification)

    async with trip_lock(manager_notification.trip_id):
        await db.refresh(manager_notification)
        _require_pending_decline(manager_notification)

        new_driver = await repo.get_driver(db, new_driver_id)
        vehicle = await repo.get_vehicle(db, vehicle_id)
        trip = await repo.get_trip(db, manager_notification.trip_id)
        if trip.status != TripStatus.DECLINED:
            raise InvalidStateError(
                f"Trip {trip.trip_id} is {trip.status.value}, expected declined",
                details={"trip_id": trip.trip_id, "status": trip.status.value}
            )
        parcels = await repo.get_parcels(db, trip.parcel_ids or [])
        stale_offers = await repo.get_pending_driver_offers(db, trip.trip_id)
        old_vehicle_id = trip.vehicle_id
        manager_id = manager_notification.manager_id
        offer: Dict[str, Notification] = {}

        async def update_trip():
            _reserve_for_driver(trip, new_driver, vehicle)
            log_event(
                db, AuditAction.DRIVER_REASSIGNED, trip_id=trip.trip_id,
                actor_id=manager_id, actor_type="manager",
                metadata={
                    "declined_driver_id": manager_notification.declined_driver_id,
                    "new_driver_id": new_driver.id,
                    "vehicle_id": vehicle.id,
                }
            )

        async def update_driver():
            new_driver.driver_status = DriverStatus.PENDING
            new_driver.is_available = False

        async def update_parcels():
            _assign_parcels(trip, new_driver, vehicle, parcels)

        async def update_vehicle():
            await _swap_vehicle(db, old_vehicle_id, vehicle)

        async def create_offer():
            for stale in stale_offers:
                stale.status = NotificationStatus.REASSIGNED
            offer["new"] = build_notification(
                DriverRecipient(driver_id=new_driver.id),
                trip,
                vehicle_id=vehicle.id,
                type=NotificationType.REASSIGN_DRIVER,
                message=f"Trip {trip.trip_id} has been reassigned to you",
                assigned_by=manager_id,
            )
            db.add(offer["new"])

        async def close_manager_notification():
            manager_notification.status = NotificationStatus.REASSIGNED
            manager_notification.read = True

        await run_transition(db, "reassign_driver", [
            ("trip", update_trip),
            ("driver", update_driver),
            ("parcels", update_parcels),
            ("vehicle", update_vehicle),
            ("driver_notification", create_offer),
            ("manager_notification", close_manager_notification),
        ])
        logger.info(
            "Trip %s reassigned from declined driver %s to driver %s",
            trip.trip_id, manager_notification.declined_driver_id, new_driver.id
        )

    await notifier.notify_driver_offer(db, offer["new"])
    return offer["new"]


async def reassign_trip(
    db: AsyncSession,
    trip_id: str,
    new_driver_id: int,
    manager_id: str,
    new_vehicle_id: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> Notification:
    """
    Hand a pending or declined trip to another driver (and optionally
    another vehicle). Outstanding offers and decline notices for the trip
    are closed as reassigned.

    Returns:
        The new `trip_reassignment` offer
    """
    notifier = notifier or get_notifier()

    async with trip_lock(trip_id):
        trip = await repo.get_trip(db, trip_id)
        if trip.status not in (TripStatus.PENDING, TripStatus.DECLINED):
            raise InvalidStateError(
                f"Cannot reassign a {trip.status.value} trip",
                details={"trip_id": trip_id, "status": trip.status.value}
            )
        new_driver = await repo.get_driver(db, new_driver_id)
        vehicle = await repo.get_vehicle(db, new_vehicle_id or trip.vehicle_id)
        parcels = await repo.get_parcels(db, trip.parcel_ids or [])
        previous_driver = None
        if trip.driver_id != new_driver.id:
            previous_driver = await db.get(Driver, trip.driver_id)
        stale_offers = await repo.get_pending_driver_offers(db, trip_id)
        open_declines = await repo.get_pending_declines(db, trip_id)
        old_vehicle_id = trip.vehicle_id
        previous_driver_id = trip.driver_id
        offer: Dict[str, Notification] = {}

        async def update_trip():
            _reserve_for_driver(trip, new_driver, vehicle, assigned_by=manager_id)
            log_event(
                db, AuditAction.TRIP_REASSIGNED, trip_id=trip_id,
                actor_id=manager_id, actor_type="manager",
                metadata={
                    "previous_driver_id": previous_driver_id,
                    "new_driver_id": new_driver.id,
                    "previous_vehicle_id": old_vehicle_id,
                    "vehicle_id": vehicle.id,
                }
            )

        async def update_previous_driver():
            if (
                previous_driver is not None
                and previous_driver.driver_status == DriverStatus.PENDING
                and previous_driver.current_trip_id in (None, trip_id)
            ):
                release_driver(previous_driver)

        async def update_driver():
            new_driver.driver_status = DriverStatus.PENDING
            new_driver.is_available = False

        async def update_vehicle():
            await _swap_vehicle(db, old_vehicle_id, vehicle)

        async def update_parcels():
            _assign_parcels(trip, new_driver, vehicle, parcels)

        async def close_outstanding():
            for stale in stale_offers:
                stale.status = NotificationStatus.REASSIGNED
            for decline in open_declines:
                decline.status = NotificationStatus.REASSIGNED
                decline.read = True

        async def create_offer():
            offer["new"] = build_notification(
                DriverRecipient(driver_id=new_driver.id),
                trip,
                vehicle_id=vehicle.id,
                type=NotificationType.TRIP_REASSIGNMENT,
                message=f"Trip {trip_id} has been reassigned to you",
                assigned_by=manager_id,
            )
            db.add(offer["new"])

        await run_transition(db, "reassign_trip", [
            ("trip", update_trip),
            ("previous_driver", update_previous_driver),
            ("driver", update_driver),
            ("vehicle", update_vehicle),
            ("parcels", update_parcels),
            ("outstanding_notifications", close_outstanding),
            ("driver_notification", create_offer),
        ])
        logger.info("Trip %s reassigned from driver %s to driver %s", trip_id, previous_driver_id, new_driver.id)

    await notifier.notify_driver_offer(db, offer["new"])
    return offer["new"]


def _require_pending_decline(notification: Notification) -> None:
    if (
        notification.recipient_type != RecipientType.MANAGER
        or notification.type != NotificationType.DRIVER_DECLINED
    ):
        raise InvalidStateError(
            "Only a manager driver_declined notification can be reassigned",
            details={"notification_id": notification.id, "type": notification.type.value}
        )
    if notification.status != NotificationStatus.PENDING:
        raise InvalidStateError(
            f"Notification {notification.id} is already {notification.status.value}",
            details={"notification_id": notification.id, "status": notification.status.value}
        )
