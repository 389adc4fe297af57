"""
Audit Log Database Model.

Records every committed dispatch transition for traceability.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from fleet_dispatch.app.db.session import Base, utc_now


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - TRIP_CREATED / TRIP_STARTED / TRIP_COMPLETED / TRIP_STATUS_OVERRIDDEN
    - OFFER_CREATED / OFFER_ACCEPTED / OFFER_DECLINED
    - DRIVER_REASSIGNED / TRIP_REASSIGNED
    - DELIVERY_UPDATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(String(100), index=True, nullable=True)
    actor_type = Column(String(50), nullable=True)  # driver, manager, system

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which trip the action touched
    trip_id = Column(String(100), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime, default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', trip='{self.trip_id}')>"
