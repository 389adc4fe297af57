"""
Notification Lifecycle Manager.

Creates trip offers, serves active (non-expired) notifications and
resolves driver offers. Resolution takes the trip lock, runs the
coordinator's fan-out together with the notification's own update in one
transaction, and pushes follow-up messages only after commit.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, func, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidStateError,
)
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.enums import DriverStatus
from fleet_dispatch.app.models.notification import (
    DriverRecipient,
    ManagerRecipient,
    Notification,
    NotificationStatus,
    NotificationType,
    Recipient,
    RecipientType,
)
from fleet_dispatch.app.models.trip_enums import TripStatus
from fleet_dispatch.app.services import fleet_repository as repo
from fleet_dispatch.app.services.assignment_coordinator import (
    build_notification,
    plan_accept,
    plan_decline,
)
from fleet_dispatch.app.services.audit import AuditAction, log_event
from fleet_dispatch.app.services.notifier import Notifier, get_notifier
from fleet_dispatch.app.services.transition import run_transition
from fleet_dispatch.app.services.trip_lock import trip_lock

logger = logging.getLogger("fleet_dispatch.notifications")

DECISIONS = {
    "accepted": NotificationStatus.ACCEPTED,
    "declined": NotificationStatus.DECLINED,
}


class NotificationService:

    @staticmethod
    async def offer(
        db: AsyncSession,
        trip_id: str,
        recipient: Recipient,
        vehicle_id: int,
        parcel_ids: Optional[Sequence[int]] = None,
        type: NotificationType = NotificationType.TRIP_ASSIGNMENT,
        message: Optional[str] = None,
        assigned_by: Optional[str] = None,
        delivery_locations: Optional[List[Dict[str, Any]]] = None,
        start_location: Optional[Dict[str, Any]] = None,
        notifier: Optional[Notifier] = None,
    ) -> Notification:
        """
        Create a pending notification for a driver or a manager.

        A driver offer moves the driver to `pending` and is rejected while
        another live pending driver offer exists for the trip.

        Raises:
            ResourceNotFoundError: driver, vehicle or trip does not exist
            InvalidStateError: a driver offer on a trip that is not pending
            ConflictError: the trip already has a live pending driver offer
        """
        notifier = notifier or get_notifier()
        driver = None
        if isinstance(recipient, DriverRecipient):
            driver = await repo.get_driver(db, recipient.driver_id)
        await repo.get_vehicle(db, vehicle_id)
        await repo.get_trip(db, trip_id)

        async with trip_lock(trip_id):
            trip = await repo.get_trip(db, trip_id)
            if driver is not None:
                if trip.status != TripStatus.PENDING:
                    raise InvalidStateError(
                        f"Trip {trip_id} is {trip.status.value}, only pending trips can be offered",
                        details={"trip_id": trip_id, "status": trip.status.value}
                    )
                existing = await repo.get_pending_driver_offers(db, trip_id, active_only=True)
                if existing:
                    raise ConflictError(
                        f"Trip {trip_id} already has a pending driver offer",
                        details={"trip_id": trip_id, "notification_id": existing[0].id}
                    )

            notification = build_notification(
                recipient,
                trip,
                vehicle_id=vehicle_id,
                type=type,
                message=message or _default_message(type, trip_id),
                parcel_ids=parcel_ids,
                assigned_by=assigned_by,
                delivery_locations=delivery_locations,
                start_location=start_location,
            )

            async def create_notification():
                db.add(notification)

            async def update_driver():
                driver.driver_status = DriverStatus.PENDING
                log_event(
                    db, AuditAction.OFFER_CREATED, trip_id=trip_id,
                    actor_id=assigned_by, actor_type="manager",
                    metadata={"driver_id": driver.id, "vehicle_id": vehicle_id, "type": type.value}
                )

            steps = [("notification", create_notification)]
            if driver is not None:
                steps.append(("driver", update_driver))
            await run_transition(db, "offer", steps)

        if driver is not None:
            await notifier.notify_driver_offer(db, notification)
        else:
            await notifier.notify_manager(db, notification)
        return notification

    @staticmethod
    async def get(db: AsyncSession, notification_id: int) -> Notification:
        return await repo.get_notification(db, notification_id)

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int) -> Notification:
        """Mark a notification as read."""
        notification = await repo.get_notification(db, notification_id)
        notification.read = True
        await db.commit()
        return notification

    @staticmethod
    async def delete(db: AsyncSession, notification_id: int) -> None:
        """
        Delete a notification.

        Raises:
            ResourceNotFoundError: notification does not exist
            InvalidStateError: a live pending driver offer, which still holds
                its driver in `pending`
        """
        notification = await repo.get_notification(db, notification_id)
        async with trip_lock(notification.trip_id):
            await db.refresh(notification)
            if (
                notification.recipient_type == RecipientType.DRIVER
                and notification.status == NotificationStatus.PENDING
                and not notification.is_expired()
            ):
                raise InvalidStateError(
                    f"Notification {notification_id} is a pending offer and must be resolved first",
                    details={"notification_id": notification_id}
                )

            async def delete_notification():
                await db.delete(notification)
                log_event(
                    db, AuditAction.NOTIFICATION_DELETED, trip_id=notification.trip_id,
                    metadata={"notification_id": notification_id, "type": notification.type.value}
                )

            await run_transition(db, "delete_notification", [("notification", delete_notification)])

    @staticmethod
    async def get_active(db: AsyncSession, recipient: Recipient, limit: int = 100) -> List[Notification]:
        """Non-expired notifications of a recipient, newest first."""
        query = select(Notification).where(
            Notification.expires_at > utc_now(),
            Notification.status != NotificationStatus.EXPIRED,
        )
        match recipient:
            case DriverRecipient(driver_id=driver_id):
                query = query.where(
                    Notification.recipient_type == RecipientType.DRIVER,
                    Notification.driver_id == driver_id,
                )
            case ManagerRecipient(manager_id=manager_id):
                query = query.where(
                    Notification.recipient_type == RecipientType.MANAGER,
                    Notification.manager_id == manager_id,
                )

        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def unread_count(db: AsyncSession, driver_id: int) -> int:
        """Pending, unread, non-expired notifications of a driver."""
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_type == RecipientType.DRIVER,
                Notification.driver_id == driver_id,
                Notification.status == NotificationStatus.PENDING,
                Notification.read == False,
                Notification.expires_at > utc_now(),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def resolve(
        db: AsyncSession,
        notification_id: int,
        decision: str,
        notifier: Optional[Notifier] = None,
    ) -> Notification:
        """
        Accept or decline a driver offer.

        Raises:
            DomainValidationError: decision is not `accepted` or `declined`
            ResourceNotFoundError: notification does not exist
            InvalidStateError: not a pending, live driver notification, or
                the trip is no longer pending
            ConflictError: a concurrent request changed the records first
        """
        status = DECISIONS.get(decision)
        if status is None:
            raise DomainValidationError(
                f"Invalid decision '{decision}'",
                details={"allowed": sorted(DECISIONS)}
            )
        notifier = notifier or get_notifier()

        notification = await repo.get_notification(db, notification_id)
        if notification.recipient_type != RecipientType.DRIVER:
            raise InvalidStateError(
                "Only driver notifications can be accepted or declined",
                details={"notification_id": notification_id}
            )

        async with trip_lock(notification.trip_id):
            await db.refresh(notification)
            if notification.status != NotificationStatus.PENDING:
                raise InvalidStateError(
                    f"Notification {notification_id} is already {notification.status.value}",
                    details={"notification_id": notification_id, "status": notification.status.value}
                )
            if notification.is_expired():
                notification.status = NotificationStatus.EXPIRED
                await db.commit()
                raise InvalidStateError(
                    f"Notification {notification_id} has expired",
                    details={"notification_id": notification_id}
                )

            if status == NotificationStatus.ACCEPTED:
                plan = await plan_accept(db, notification)
            else:
                plan = await plan_decline(db, notification)

            async def update_notification():
                notification.status = status
                notification.read = True

            plan.steps.append(("notification", update_notification))
            await run_transition(db, f"resolve_{decision}", plan.steps)

        for created in plan.created:
            await notifier.notify_manager(db, created)
        return notification

    @staticmethod
    async def expire_stale(db: AsyncSession) -> int:
        """
        Mark pending notifications past their expiry as expired.

        Reads already filter on `expires_at`; this only tidies the table.
        """
        now = utc_now()
        result = await db.execute(
            update(Notification)
            .where(
                Notification.status == NotificationStatus.PENDING,
                Notification.expires_at <= now,
            )
            .values(status=NotificationStatus.EXPIRED, version=Notification.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            log_event(
                db, AuditAction.OFFERS_EXPIRED, actor_type="system",
                metadata={"count": result.rowcount}
            )
        await db.commit()
        logger.info("Expired %d stale notifications", result.rowcount)
        return result.rowcount


def _default_message(type: NotificationType, trip_id: str) -> str:
    if type == NotificationType.REASSIGN_DRIVER:
        return f"Trip {trip_id} has been reassigned to you"
    if type == NotificationType.TRIP_UPDATE:
        return f"Trip {trip_id} has been updated"
    if type == NotificationType.TRIP_CANCELLATION:
        return f"Trip {trip_id} has been cancelled"
    return f"New trip {trip_id} assigned to you"
