"""
Admin Operations API Endpoints.

Maintenance of the notification table and the dead letter queue.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.db.session import get_db
from fleet_dispatch.app.schemas.ops import DLQItemResponse, ExpireNotificationsResponse
from fleet_dispatch.app.services.notification_lifecycle import NotificationService
from fleet_dispatch.app.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/notifications/expire", response_model=ExpireNotificationsResponse)
async def expire_stale_notifications(db: AsyncSession = Depends(get_db)):
    """Mark pending notifications past their expiry as expired."""
    count = await NotificationService.expire_stale(db)
    return ExpireNotificationsResponse(expired=count)


@router.post("/dlq/{dlq_id}/retry", response_model=DLQItemResponse)
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Re-send a failed notifier delivery from the Dead Letter Queue."""
    return await notifier.retry_dlq_item(db, dlq_id)
