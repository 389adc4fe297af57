"""
Notifier - best-effort delivery of dispatch messages.

Posts offers to drivers and managers, and tracking messages to parcel
recipients, to a configured webhook. Delivery happens after the
transition has committed: a failure is logged, recorded in the dead
letter queue and never propagated to the caller.
"""

import logging
from typing import Any, Dict, Iterable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.core.exceptions import ExternalServiceError, ResourceNotFoundError
from fleet_dispatch.app.core.reliability import CircuitBreaker, CircuitOpenError
from fleet_dispatch.app.db.session import utc_now
from fleet_dispatch.app.models.dlq import DeadLetterQueue, DLQStatus
from fleet_dispatch.app.models.notification import Notification, RecipientType
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.trip import Trip

logger = logging.getLogger("fleet_dispatch.notifier")

# DLQ task names
TASK_DRIVER_OFFER = "notify_driver_offer"
TASK_MANAGER_MESSAGE = "notify_manager"
TASK_PARCEL_TRACKING = "notify_parcel_tracking"


class Notifier:
    """
    Webhook notifier guarded by a circuit breaker.

    With no webhook URL configured, messages are only logged.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport
        self.breaker = breaker or CircuitBreaker(
            "notifier",
            failure_threshold=settings.notifier_failure_threshold,
            reset_timeout=settings.notifier_reset_timeout_seconds,
        )

    @property
    def webhook_url(self) -> Optional[str]:
        return self._webhook_url or settings.notifier_webhook_url

    async def notify_driver_offer(self, db: AsyncSession, notification: Notification) -> bool:
        """Push an offer (or reassignment) to the driver it targets."""
        return await self._deliver(db, TASK_DRIVER_OFFER, _notification_payload(notification))

    async def notify_manager(self, db: AsyncSession, notification: Notification) -> bool:
        """Push an informational notification (e.g. a decline) to a manager."""
        return await self._deliver(db, TASK_MANAGER_MESSAGE, _notification_payload(notification))

    async def notify_parcel_recipients(
        self,
        db: AsyncSession,
        trip: Trip,
        parcels: Iterable[Parcel]
    ) -> int:
        """
        Send a tracking message to the recipient of every parcel on a
        started trip. Parcels without phone or email are skipped.

        Returns:
            Number of messages delivered
        """
        delivered = 0
        for parcel in parcels:
            if not (parcel.recipient_phone or parcel.recipient_email):
                continue
            payload = {
                "event": TASK_PARCEL_TRACKING,
                "trip_id": trip.trip_id,
                "parcel_id": parcel.id,
                "tracking_id": parcel.tracking_id,
                "recipient_name": parcel.recipient_name,
                "recipient_phone": parcel.recipient_phone,
                "recipient_email": parcel.recipient_email,
                "tracking_url": f"{settings.tracking_base_url}/{parcel.tracking_id}",
                "message": f"Your parcel {parcel.tracking_id} is out for delivery.",
            }
            if await self._deliver(db, TASK_PARCEL_TRACKING, payload):
                delivered += 1
        return delivered

    async def retry_dlq_item(self, db: AsyncSession, dlq_id: int) -> DeadLetterQueue:
        """
        Re-send a failed delivery from the dead letter queue.

        The item ends PROCESSED on success and back in FAILED otherwise.
        """
        item = await db.get(DeadLetterQueue, dlq_id)
        if item is None:
            raise ResourceNotFoundError("DLQ item", dlq_id)

        item.status = DLQStatus.RETRYING
        item.retry_count += 1
        item.last_retry_at = utc_now()

        try:
            await self._send(item.payload or {})
        except ExternalServiceError as exc:
            logger.warning("DLQ item %s retry failed: %s", dlq_id, exc.message)
            item.status = DLQStatus.FAILED
            item.error_message = exc.message
        else:
            item.status = DLQStatus.PROCESSED

        await db.commit()
        return item

    async def _deliver(self, db: AsyncSession, task_name: str, payload: Dict[str, Any]) -> bool:
        try:
            await self._send(payload)
        except ExternalServiceError as exc:
            logger.warning("Notifier delivery %s failed: %s", task_name, exc.message)
            await self._dead_letter(db, task_name, exc.message, payload)
            return False
        return True

    async def _send(self, payload: Dict[str, Any]) -> None:
        url = self.webhook_url
        if not url:
            logger.info("Notifier (no webhook): %s", payload.get("message"))
            return

        try:
            await self.breaker.call(self._post, url, payload)
        except CircuitOpenError as exc:
            raise ExternalServiceError("notifier", str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError("notifier", f"{type(exc).__name__}: {exc}") from exc

    async def _post(self, url: str, payload: Dict[str, Any]) -> None:
        timeout = self._timeout or settings.notifier_timeout_seconds
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()

    async def _dead_letter(
        self,
        db: AsyncSession,
        task_name: str,
        error_message: str,
        payload: Dict[str, Any]
    ) -> None:
        db.add(DeadLetterQueue(
            task_name=task_name,
            error_message=error_message,
            payload=payload,
            status=DLQStatus.FAILED,
        ))
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Could not record failed delivery %s", task_name)


def _notification_payload(notification: Notification) -> Dict[str, Any]:
    recipient: Dict[str, Any] = {"type": notification.recipient_type.value}
    if notification.recipient_type == RecipientType.DRIVER:
        recipient["driver_id"] = notification.driver_id
    else:
        recipient["manager_id"] = notification.manager_id
    return {
        "event": notification.type.value,
        "notification_id": notification.id,
        "trip_id": notification.trip_id,
        "vehicle_id": notification.vehicle_id,
        "parcel_ids": list(notification.parcel_ids or []),
        "recipient": recipient,
        "message": notification.message,
        "expires_at": notification.expires_at.isoformat(),
    }


notifier = Notifier()


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier."""
    return notifier
