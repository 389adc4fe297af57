"""
Trip state machine tests.

Creation checks, journey start, delivery roll-up and status override.
"""

import pytest

from fleet_dispatch.app.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidStateError,
    ResourceNotFoundError,
)
from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.notification import (
    DriverRecipient,
    ManagerRecipient,
    NotificationStatus,
    NotificationType,
)
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.models.trip_enums import DeliveryStatus, TripStatus
from fleet_dispatch.app.services import fleet_registry as registry
from fleet_dispatch.app.services import trip_state_machine as trips
from fleet_dispatch.app.services.assignment_coordinator import reassign_driver
from fleet_dispatch.app.services.notification_lifecycle import NotificationService


@pytest.fixture
async def accepted_trip(db_session, trip, driver, vehicle):
    offer = await NotificationService.offer(
        db_session, trip.trip_id, DriverRecipient(driver_id=driver.id), vehicle.id, assigned_by="M1"
    )
    await NotificationService.resolve(db_session, offer.id, "accepted")
    return trip


# --- Creation ---

@pytest.mark.asyncio
async def test_create_trip_reserves_records(db_session, trip, driver, vehicle, parcels):
    assert trip.status == TripStatus.PENDING
    assert trip.parcel_ids == [p.id for p in parcels]
    assert [d.parcel_id for d in trip.destinations] == [p.id for p in parcels]
    assert [d.order for d in trip.destinations] == [1, 2]
    assert trip.total_weight == pytest.approx(6.5)
    assert trip.version == 1

    assert driver.driver_status == DriverStatus.PENDING
    assert driver.is_available is False
    assert vehicle.status == VehicleStatus.ASSIGNED
    for parcel in parcels:
        assert parcel.trip_id == "T1"
        assert parcel.assigned_vehicle_id == vehicle.id
        assert parcel.status == ParcelStatus.PENDING


@pytest.mark.asyncio
async def test_destinations_are_stored_in_order(db_session, driver, vehicle, parcels, make_destinations):
    destinations = make_destinations(parcels)
    destinations[0]["order"], destinations[1]["order"] = 2, 1

    trip = await trips.create_trip(
        db_session, "T9", driver.id, vehicle.id, [p.id for p in parcels], destinations
    )

    assert [d.parcel_id for d in trip.destinations] == [parcels[1].id, parcels[0].id]


@pytest.mark.asyncio
async def test_create_trip_validation(db_session, driver, vehicle, parcels, make_destinations):
    ids = [p.id for p in parcels]

    with pytest.raises(DomainValidationError):
        await trips.create_trip(db_session, "T2", driver.id, vehicle.id, [], [])

    with pytest.raises(DomainValidationError):
        await trips.create_trip(
            db_session, "T2", driver.id, vehicle.id, ids + [ids[0]], make_destinations(parcels)
        )

    with pytest.raises(DomainValidationError):
        await trips.create_trip(
            db_session, "T2", driver.id, vehicle.id, ids, make_destinations(parcels[:1])
        )

    with pytest.raises(ResourceNotFoundError):
        await trips.create_trip(db_session, "T2", 999, vehicle.id, ids, make_destinations(parcels))


@pytest.mark.asyncio
async def test_create_trip_conflicts(db_session, trip, second_driver, second_vehicle, parcels, make_destinations):
    with pytest.raises(ConflictError):
        await trips.create_trip(
            db_session, "T1", second_driver.id, second_vehicle.id,
            [parcels[0].id], make_destinations(parcels[:1])
        )

    # Parcel already on active trip T1
    with pytest.raises(ConflictError):
        await trips.create_trip(
            db_session, "T2", second_driver.id, second_vehicle.id,
            [parcels[0].id], make_destinations(parcels[:1])
        )


@pytest.mark.asyncio
async def test_parcels_of_cancelled_trip_can_be_rebooked(
    db_session, trip, second_driver, second_vehicle, parcels, make_destinations
):
    await trips.update_trip_status(db_session, "T1", TripStatus.CANCELLED)

    rebooked = await trips.create_trip(
        db_session, "T2", second_driver.id, second_vehicle.id,
        [p.id for p in parcels], make_destinations(parcels)
    )
    assert rebooked.status == TripStatus.PENDING


# --- Start journey ---

@pytest.mark.asyncio
async def test_start_requires_accepted_trip_and_changes_nothing(db_session, trip, driver, vehicle, parcels):
    with pytest.raises(InvalidStateError) as exc_info:
        await trips.start_journey(db_session, "T1")

    assert exc_info.value.message == "Trip must be accepted to start"
    await db_session.refresh(trip)
    assert trip.status == TripStatus.PENDING
    assert trip.started_at is None
    assert driver.driver_status == DriverStatus.PENDING
    assert vehicle.status == VehicleStatus.ASSIGNED
    assert all(p.status == ParcelStatus.PENDING for p in parcels)


@pytest.mark.asyncio
async def test_start_journey(db_session, accepted_trip, driver, vehicle, parcels):
    trip = await trips.start_journey(db_session, "T1")

    assert trip.status == TripStatus.IN_PROGRESS
    assert trip.started_at is not None
    assert driver.driver_status == DriverStatus.ON_TRIP
    assert vehicle.status == VehicleStatus.ON_TRIP
    assert all(p.status == ParcelStatus.IN_TRANSIT for p in parcels)
    assert all(d.delivery_status == DeliveryStatus.IN_TRANSIT for d in trip.destinations)


@pytest.mark.asyncio
async def test_start_unknown_trip(db_session):
    with pytest.raises(ResourceNotFoundError):
        await trips.start_journey(db_session, "NOPE")


# --- Delivery tracking ---

@pytest.mark.asyncio
async def test_trip_completes_when_every_destination_finishes(db_session, accepted_trip, driver, vehicle, parcels):
    await trips.start_journey(db_session, "T1")

    trip = await trips.update_delivery_status(
        db_session, "T1", parcels[0].id, DeliveryStatus.DELIVERED, notes="Left with concierge"
    )
    first = trip.destination_for(parcels[0].id)
    assert first.delivered_at is not None
    assert first.notes == "Left with concierge"
    assert parcels[0].status == ParcelStatus.DELIVERED
    assert trip.status == TripStatus.IN_PROGRESS

    trip = await trips.update_delivery_status(db_session, "T1", parcels[1].id, DeliveryStatus.FAILED)

    assert trip.status == TripStatus.COMPLETED
    assert trip.completed_at is not None
    assert driver.driver_status == DriverStatus.AVAILABLE
    assert driver.current_trip_id is None
    assert driver.is_available is False
    assert vehicle.status == VehicleStatus.ACTIVE
    assert vehicle.current_trip_id is None
    assert vehicle.driver_id is None
    assert parcels[1].status == ParcelStatus.IN_TRANSIT


@pytest.mark.asyncio
async def test_delivery_update_guards(db_session, accepted_trip, parcels):
    with pytest.raises(InvalidStateError):
        await trips.update_delivery_status(db_session, "T1", parcels[0].id, DeliveryStatus.DELIVERED)

    await trips.start_journey(db_session, "T1")

    with pytest.raises(ResourceNotFoundError):
        await trips.update_delivery_status(db_session, "T1", 999, DeliveryStatus.DELIVERED)


# --- Administrative override ---

@pytest.mark.asyncio
async def test_override_to_accepted_reflects_on_driver_and_vehicle(db_session, trip, driver, vehicle):
    await trips.update_trip_status(db_session, "T1", TripStatus.ACCEPTED, actor_id="admin")

    assert trip.status == TripStatus.ACCEPTED
    assert trip.accepted_at is not None
    assert driver.driver_status == DriverStatus.ACCEPTED
    assert driver.current_trip_id == "T1"
    assert vehicle.status == VehicleStatus.TRIP_CONFIRMED
    assert vehicle.current_trip_id == "T1"


@pytest.mark.asyncio
async def test_override_to_declined_keeps_vehicle_reserved(db_session, trip, driver, vehicle, parcels):
    await trips.update_trip_status(db_session, "T1", TripStatus.DECLINED)

    assert trip.status == TripStatus.DECLINED
    assert vehicle.status == VehicleStatus.ASSIGNED
    assert vehicle.driver_id is None
    assert driver.driver_status == DriverStatus.AVAILABLE
    assert all(p.assigned_driver_id is None and p.status == ParcelStatus.PENDING for p in parcels)


@pytest.mark.asyncio
async def test_override_to_cancelled_releases_everything(db_session, trip, driver, vehicle, parcels):
    offer = await NotificationService.offer(
        db_session, "T1", DriverRecipient(driver_id=driver.id), vehicle.id
    )

    await trips.update_trip_status(db_session, "T1", TripStatus.CANCELLED)

    assert trip.status == TripStatus.CANCELLED
    assert driver.driver_status == DriverStatus.AVAILABLE
    assert vehicle.status == VehicleStatus.ACTIVE
    for parcel in parcels:
        assert parcel.trip_id is None
        assert parcel.assigned_vehicle_id is None
        assert parcel.status == ParcelStatus.PENDING
    await db_session.refresh(offer)
    assert offer.status == NotificationStatus.EXPIRED


@pytest.mark.asyncio
async def test_cancel_closes_open_decline_notices(db_session, trip, driver, second_driver, vehicle):
    offer = await NotificationService.offer(
        db_session, "T1", DriverRecipient(driver_id=driver.id), vehicle.id, assigned_by="M1"
    )
    await NotificationService.resolve(db_session, offer.id, "declined")
    notice = (await NotificationService.get_active(db_session, ManagerRecipient(manager_id="M1")))[0]
    assert notice.type == NotificationType.DRIVER_DECLINED

    await trips.update_trip_status(db_session, "T1", TripStatus.CANCELLED)

    await db_session.refresh(notice)
    assert notice.status == NotificationStatus.EXPIRED
    assert notice.read is True
    with pytest.raises(InvalidStateError):
        await reassign_driver(db_session, notice.id, second_driver.id, vehicle.id)

@pytest.mark.asyncio
async def test_terminal_trips_reject_override(db_session, trip):
    await trips.update_trip_status(db_session, "T1", TripStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        await trips.update_trip_status(db_session, "T1", TripStatus.PENDING)


# --- Reads ---

@pytest.mark.asyncio
async def test_active_trip_for_driver(db_session, accepted_trip, driver, second_driver):
    active = await trips.get_active_trip_for_driver(db_session, driver.id)
    assert active.trip_id == "T1"

    with pytest.raises(ResourceNotFoundError):
        await trips.get_active_trip_for_driver(db_session, second_driver.id)


@pytest.mark.asyncio
async def test_declined_parcels_listing(db_session, trip, parcels):
    assert await trips.get_declined_parcels(db_session) == []

    await trips.update_trip_status(db_session, "T1", TripStatus.DECLINED)

    declined = await trips.get_declined_parcels(db_session)
    assert [p.id for p in declined] == [p.id for p in parcels]


@pytest.mark.asyncio
async def test_list_trips_filters_by_status(db_session, trip, second_driver, second_vehicle):
    parcel = await registry.create_parcel(db_session, tracking_id="TRK-2001", weight_kg=1.0, recipient_name="Eve")
    await trips.create_trip(
        db_session, "T2", second_driver.id, second_vehicle.id, [parcel.id],
        [{"parcel_id": parcel.id, "latitude": 1.0, "longitude": 2.0, "location_name": "X", "order": 1}],
    )
    await trips.update_trip_status(db_session, "T2", TripStatus.ACCEPTED)

    pending = await trips.list_trips(db_session, status=TripStatus.PENDING)
    assert [t.trip_id for t in pending] == ["T1"]
    assert len(await trips.list_trips(db_session)) == 2
