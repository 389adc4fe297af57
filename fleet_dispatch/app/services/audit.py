"""
Audit logging service for dispatch transitions.

Audit rows are added to the caller's session so they commit (or roll
back) together with the transition they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from fleet_dispatch.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_STATUS_OVERRIDDEN = "TRIP_STATUS_OVERRIDDEN"
    DELIVERY_UPDATED = "DELIVERY_UPDATED"

    OFFER_CREATED = "OFFER_CREATED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    OFFER_DECLINED = "OFFER_DECLINED"
    OFFERS_EXPIRED = "OFFERS_EXPIRED"

    DRIVER_REASSIGNED = "DRIVER_REASSIGNED"
    TRIP_REASSIGNED = "TRIP_REASSIGNED"

    SOS_TOGGLED = "SOS_TOGGLED"
    NOTIFICATION_DELETED = "NOTIFICATION_DELETED"


def log_event(
    db: AsyncSession,
    action: str,
    trip_id: Optional[str] = None,
    actor_id: Optional[Any] = None,
    actor_type: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Stage an audit event on the session.

    Args:
        db: Database session of the running transition
        action: Action being performed (use AuditAction constants)
        trip_id: Business key of the trip concerned
        actor_id: ID of the driver or manager performing the action
        actor_type: "driver", "manager" or "system"
        metadata: Additional context as JSON

    Returns:
        The pending AuditLog instance
    """
    audit_log = AuditLog(
        action=action,
        trip_id=trip_id,
        actor_id=str(actor_id) if actor_id is not None else None,
        actor_type=actor_type,
        meta_data=metadata
    )
    db.add(audit_log)
    return audit_log


async def get_trip_audit_trail(
    db: AsyncSession,
    trip_id: str,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the audit trail of one trip, most recent first.
    """
    query = (
        select(AuditLog)
        .where(AuditLog.trip_id == trip_id)
        .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
