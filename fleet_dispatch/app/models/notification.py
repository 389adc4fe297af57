"""
Notification database model.

A notification is a TTL-bound trip offer or informational message for a
driver or a manager.
"""

import enum
from dataclasses import dataclass
from typing import Union

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, Enum, CheckConstraint
from fleet_dispatch.app.db.session import Base, utc_now


class RecipientType(str, enum.Enum):
    DRIVER = "driver"
    MANAGER = "manager"


class NotificationType(str, enum.Enum):
    TRIP_ASSIGNMENT = "trip_assignment"
    DRIVER_DECLINED = "driver_declined"
    REASSIGN_DRIVER = "reassign_driver"
    TRIP_REASSIGNMENT = "trip_reassignment"
    TRIP_UPDATE = "trip_update"
    TRIP_CANCELLATION = "trip_cancellation"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    REASSIGNED = "reassigned"


@dataclass(frozen=True)
class DriverRecipient:
    driver_id: int


@dataclass(frozen=True)
class ManagerRecipient:
    manager_id: str


Recipient = Union[DriverRecipient, ManagerRecipient]


class Notification(Base):
    """
    Notification model.

    Exactly one of `driver_id` / `manager_id` is set, matching
    `recipient_type`. After creation only `status` and `read` change;
    `version` rejects a second concurrent resolution.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    recipient_type = Column(Enum(RecipientType), nullable=False, index=True)
    driver_id = Column(Integer, nullable=True, index=True)
    manager_id = Column(String(100), nullable=True, index=True)

    # Trip references
    trip_id = Column(String(100), nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False)
    parcel_ids = Column(JSON, nullable=False, default=list)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.TRIP_ASSIGNMENT, nullable=False)
    message = Column(Text, nullable=False)
    delivery_locations = Column(JSON, nullable=True)
    start_location = Column(JSON, nullable=True)
    declined_driver_id = Column(Integer, nullable=True)
    assigned_by = Column(String(100), nullable=True)

    # State
    status = Column(Enum(NotificationStatus), default=NotificationStatus.PENDING, nullable=False, index=True)
    read = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint(
            "(driver_id IS NOT NULL AND manager_id IS NULL) OR "
            "(driver_id IS NULL AND manager_id IS NOT NULL)",
            name="ck_notifications_single_recipient",
        ),
    )

    @property
    def recipient(self) -> Recipient:
        if self.recipient_type == RecipientType.DRIVER:
            return DriverRecipient(driver_id=self.driver_id)
        return ManagerRecipient(manager_id=self.manager_id)

    @recipient.setter
    def recipient(self, value: Recipient) -> None:
        match value:
            case DriverRecipient(driver_id=driver_id):
                self.recipient_type = RecipientType.DRIVER
                self.driver_id = driver_id
                self.manager_id = None
            case ManagerRecipient(manager_id=manager_id):
                self.recipient_type = RecipientType.MANAGER
                self.manager_id = manager_id
                self.driver_id = None
            case _:
                raise TypeError(f"Unsupported recipient: {value!r}")

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or utc_now())

    def __repr__(self):
        return f"<Notification(id={self.id}, trip='{self.trip_id}', type='{self.type.value}', status='{self.status.value}')>"
