"""
Notification API Endpoints.

Trip offers for drivers, decline notices for managers, and their
resolution.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from fleet_dispatch.app.db.session import get_db
from fleet_dispatch.app.models.notification import DriverRecipient, ManagerRecipient
from fleet_dispatch.app.schemas.notification import (
    NotificationCreate,
    NotificationResponse,
    NotificationStatusUpdate,
    ReassignDriverRequest,
    UnreadCountResponse,
)
from fleet_dispatch.app.services.assignment_coordinator import reassign_driver
from fleet_dispatch.app.services.notification_lifecycle import NotificationService
from fleet_dispatch.app.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    req: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """
    Offer a trip to a driver, or send a manager an informational message.

    Returns 409 if the trip already has a live pending driver offer.
    """
    return await NotificationService.offer(
        db,
        trip_id=req.trip_id,
        recipient=req.to_recipient(),
        vehicle_id=req.vehicle_id,
        parcel_ids=req.parcel_ids,
        type=req.type,
        message=req.message,
        assigned_by=req.assigned_by,
        delivery_locations=(
            [loc.model_dump() for loc in req.delivery_locations]
            if req.delivery_locations is not None else None
        ),
        start_location=req.start_location,
        notifier=notifier,
    )


@router.get("/driver/{driver_id}", response_model=List[NotificationResponse])
async def list_driver_notifications(
    driver_id: int = Path(..., description="Driver ID"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """Active (non-expired) notifications of a driver, newest first."""
    return await NotificationService.get_active(db, DriverRecipient(driver_id=driver_id), limit)


@router.get("/driver/{driver_id}/unread-count", response_model=UnreadCountResponse)
async def driver_unread_count(
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    count = await NotificationService.unread_count(db, driver_id)
    return UnreadCountResponse(driver_id=driver_id, unread_count=count)


@router.get("/manager/{manager_id}", response_model=List[NotificationResponse])
async def list_manager_notifications(
    manager_id: str = Path(..., description="Manager ID"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """Active (non-expired) notifications of a manager, newest first."""
    return await NotificationService.get_active(db, ManagerRecipient(manager_id=manager_id), limit)


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    return await NotificationService.get(db, notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Delete a notification. Live pending driver offers must be resolved first."""
    await NotificationService.delete(db, notification_id)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    return await NotificationService.mark_read(db, notification_id)


@router.patch("/{notification_id}/status", response_model=NotificationResponse)
async def resolve_notification(
    req: NotificationStatusUpdate,
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """
    Accept or decline a driver offer.

    Accepting confirms the trip, vehicle, driver and parcels. Declining
    releases the driver and, for manager-assigned trips, notifies the
    manager.
    """
    return await NotificationService.resolve(db, notification_id, req.status, notifier=notifier)


@router.post("/{notification_id}/reassign-driver", response_model=NotificationResponse)
async def reassign_declined_trip(
    req: ReassignDriverRequest,
    notification_id: int = Path(..., description="Manager driver_declined notification ID"),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Offer a declined trip to another driver. Returns the new offer."""
    return await reassign_driver(
        db, notification_id, req.new_driver_id, req.vehicle_id, notifier=notifier
    )
