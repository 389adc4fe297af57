"""
Registry schemas for drivers, vehicles and parcels.
"""

from pydantic import Field
from datetime import datetime
from typing import Optional

from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.schemas.common import CamelModel


class DriverCreate(CamelModel):
    """Schema for registering a driver."""
    name: str = Field(..., min_length=1, max_length=255)
    mobile: str = Field(..., min_length=5, max_length=30)
    email: str = Field(..., min_length=3, max_length=255)
    license: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6, description="Plain password, hashed before storage")
    is_available: bool = False


class DriverResponse(CamelModel):
    id: int
    name: str
    mobile: str
    email: str
    license: str
    is_available: bool
    driver_status: DriverStatus
    current_trip_id: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime


class VehicleCreate(CamelModel):
    reg_number: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    vehicle_type: str = Field(..., min_length=1, max_length=100, description="e.g. Truck, Van")
    capacity: Optional[str] = Field(None, max_length=100)


class VehicleResponse(CamelModel):
    id: int
    reg_number: str
    model: str
    vehicle_type: str
    capacity: Optional[str]
    status: VehicleStatus
    current_trip_id: Optional[str]
    driver_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class ParcelCreate(CamelModel):
    tracking_id: str = Field(..., min_length=1, max_length=100)
    weight_kg: float = Field(..., gt=0, description="Weight in kilograms")
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: Optional[str] = Field(None, max_length=30)
    recipient_email: Optional[str] = Field(None, max_length=255)
    recipient_address: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=500)


class ParcelResponse(CamelModel):
    id: int
    tracking_id: str
    description: Optional[str]
    weight_kg: float
    recipient_name: str
    recipient_phone: Optional[str]
    recipient_email: Optional[str]
    recipient_address: Optional[str]
    status: ParcelStatus
    trip_id: Optional[str]
    assigned_driver_id: Optional[int]
    assigned_vehicle_id: Optional[int]
    created_at: datetime
    updated_at: datetime
