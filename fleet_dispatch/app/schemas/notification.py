"""
Notification schemas.
"""

from pydantic import Field, model_validator
from datetime import datetime
from typing import Any, Dict, List, Optional

from fleet_dispatch.app.models.notification import (
    DriverRecipient,
    ManagerRecipient,
    NotificationStatus,
    NotificationType,
    Recipient,
    RecipientType,
)
from fleet_dispatch.app.schemas.common import CamelModel


class DeliveryLocation(CamelModel):
    parcel_id: int
    latitude: float
    longitude: float
    order: int
    location_name: Optional[str] = None


class NotificationCreate(CamelModel):
    """
    Schema for creating an offer or informational notification.

    Exactly one of `driver_id` / `manager_id` is given, matching
    `recipient_type`.
    """
    trip_id: str
    recipient_type: RecipientType = RecipientType.DRIVER
    driver_id: Optional[int] = None
    manager_id: Optional[str] = None
    vehicle_id: int
    parcel_ids: Optional[List[int]] = None
    type: NotificationType = NotificationType.TRIP_ASSIGNMENT
    message: Optional[str] = Field(None, max_length=1000)
    assigned_by: Optional[str] = None
    delivery_locations: Optional[List[DeliveryLocation]] = None
    start_location: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_recipient(self):
        if self.recipient_type == RecipientType.DRIVER:
            if self.driver_id is None or self.manager_id is not None:
                raise ValueError("driver notifications need driverId and no managerId")
        elif self.manager_id is None or self.driver_id is not None:
            raise ValueError("manager notifications need managerId and no driverId")
        return self

    def to_recipient(self) -> Recipient:
        if self.recipient_type == RecipientType.DRIVER:
            return DriverRecipient(driver_id=self.driver_id)
        return ManagerRecipient(manager_id=self.manager_id)


class NotificationResponse(CamelModel):
    id: int
    recipient_type: RecipientType
    driver_id: Optional[int]
    manager_id: Optional[str]
    trip_id: str
    vehicle_id: int
    parcel_ids: List[int]
    type: NotificationType
    message: str
    delivery_locations: Optional[List[DeliveryLocation]]
    start_location: Optional[Dict[str, Any]]
    declined_driver_id: Optional[int]
    assigned_by: Optional[str]
    status: NotificationStatus
    read: bool
    created_at: datetime
    expires_at: datetime


class NotificationStatusUpdate(CamelModel):
    # Checked by the lifecycle service so a bad decision is a domain error
    status: str


class ReassignDriverRequest(CamelModel):
    new_driver_id: int
    vehicle_id: int


class UnreadCountResponse(CamelModel):
    driver_id: int
    unread_count: int
