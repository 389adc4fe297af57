"""
Trip API Endpoints.

Trip creation, execution, delivery tracking and administrative override.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fleet_dispatch.app.db.session import get_db
from fleet_dispatch.app.models.trip_enums import TripStatus
from fleet_dispatch.app.schemas.fleet import ParcelResponse
from fleet_dispatch.app.schemas.notification import NotificationResponse
from fleet_dispatch.app.schemas.ops import AuditLogResponse
from fleet_dispatch.app.schemas.trip import (
    DeliveryStatusUpdate,
    LiveTripResponse,
    LocationUpdate,
    OngoingTripResponse,
    SOSUpdate,
    TripCreate,
    TripDetailResponse,
    TripReassign,
    TripResponse,
    TripStatusUpdate,
)
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services import live_tracking
from fleet_dispatch.app.services import trip_state_machine as trips
from fleet_dispatch.app.services.assignment_coordinator import reassign_trip
from fleet_dispatch.app.services.audit import get_trip_audit_trail
from fleet_dispatch.app.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    req: TripCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Create a pending trip.

    Validates:
    - At least one parcel, no duplicates
    - Destinations cover each parcel exactly once
    - Trip id is unique and no parcel is on another active trip
    """
    return await trips.create_trip(
        db,
        trip_id=req.trip_id,
        driver_id=req.driver_id,
        vehicle_id=req.vehicle_id,
        parcel_ids=req.parcel_ids,
        destinations=[d.model_dump() for d in req.delivery_destinations],
        start_location=req.start_location,
        assigned_by=req.assigned_by,
        notes=req.notes,
        total_weight=req.total_weight,
    )


@router.get("", response_model=List[TripResponse])
async def list_trips(
    trip_status: Optional[TripStatus] = Query(None, alias="status"),
    driver_id: Optional[int] = Query(None, alias="driverId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    return await trips.list_trips(db, status=trip_status, driver_id=driver_id, limit=limit, offset=offset)


@router.get("/declined/parcels", response_model=List[ParcelResponse])
async def list_declined_parcels(db: AsyncSession = Depends(get_db)):
    """Parcels of declined trips awaiting reassignment."""
    return await trips.get_declined_parcels(db)


@router.get("/ongoing", response_model=List[LiveTripResponse])
async def list_ongoing_trips(db: AsyncSession = Depends(get_db)):
    """Accepted and in-progress trips with their live position and progress."""
    return await live_tracking.list_ongoing_trips(db)


@router.get("/driver/{driver_id}/active", response_model=TripResponse)
async def get_driver_active_trip(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    return await trips.get_active_trip_for_driver(db, driver_id)


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: str = Path(..., description="Trip business key"),
    db: AsyncSession = Depends(get_db)
):
    """Trip with its driver, vehicle and parcels."""
    return await repo.get_trip_aggregate(db, trip_id)


@router.patch("/{trip_id}/status", response_model=TripResponse)
async def override_trip_status(
    req: TripStatusUpdate,
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Administrative status override. Completed and cancelled trips are final."""
    return await trips.update_trip_status(db, trip_id, req.status, actor_id=req.actor_id)


@router.post("/{trip_id}/start", response_model=TripResponse)
async def start_trip(
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Start an accepted trip."""
    return await trips.start_journey(db, trip_id, notifier=notifier)


@router.patch("/{trip_id}/delivery/{parcel_id}", response_model=TripResponse)
async def update_delivery(
    req: DeliveryStatusUpdate,
    trip_id: str = Path(...),
    parcel_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Update one delivery stop. The trip completes once every stop is finished."""
    return await trips.update_delivery_status(db, trip_id, parcel_id, req.delivery_status, req.notes)


@router.patch("/{trip_id}/reassign", response_model=NotificationResponse)
async def reassign(
    req: TripReassign,
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Hand a pending or declined trip to another driver. Returns the new offer."""
    return await reassign_trip(
        db,
        trip_id,
        new_driver_id=req.new_driver_id,
        manager_id=req.manager_id,
        new_vehicle_id=req.new_vehicle_id,
        notifier=notifier,
    )


@router.get("/{trip_id}/audit", response_model=List[AuditLogResponse])
async def get_trip_audit(
    trip_id: str = Path(...),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """Committed transitions of one trip, most recent first."""
    await repo.get_trip(db, trip_id)
    return await get_trip_audit_trail(db, trip_id, limit=limit)


@router.get("/{trip_id}/ongoing", response_model=OngoingTripResponse)
async def get_ongoing_trip(
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    return await live_tracking.get_ongoing_trip(db, trip_id)


@router.patch("/{trip_id}/location", response_model=OngoingTripResponse)
async def update_trip_location(
    req: LocationUpdate,
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Record the latest position of a trip on the road. 404 until the journey starts."""
    return await live_tracking.update_location(
        db, trip_id, req.latitude, req.longitude, address=req.address, progress=req.progress
    )


@router.patch("/{trip_id}/sos", response_model=TripResponse)
async def toggle_trip_sos(
    req: SOSUpdate,
    trip_id: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Raise or clear the SOS flag of a trip."""
    return await live_tracking.toggle_sos(
        db, trip_id, req.sos, latitude=req.latitude, longitude=req.longitude, address=req.address
    )
