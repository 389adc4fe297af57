"""
Trip schemas.

Schemas for trip creation, execution and visibility.
"""

from pydantic import Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from fleet_dispatch.app.models.trip_enums import DeliveryStatus, TripStatus
from fleet_dispatch.app.schemas.common import CamelModel
from fleet_dispatch.app.schemas.fleet import DriverResponse, ParcelResponse, VehicleResponse


class DestinationCreate(CamelModel):
    """One delivery stop of a new trip."""
    parcel_id: int
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    location_name: str = Field(..., min_length=1, max_length=500)
    order: int = Field(..., ge=0, description="Position of the stop in the route")


class TripCreate(CamelModel):
    """Schema for creating a trip."""
    trip_id: str = Field(..., min_length=1, max_length=100)
    driver_id: int
    vehicle_id: int
    parcel_ids: List[int]
    delivery_destinations: List[DestinationCreate]
    start_location: Optional[Dict[str, Any]] = None
    assigned_by: Optional[str] = Field(None, description="Manager id")
    notes: Optional[str] = None
    total_weight: Optional[float] = Field(None, ge=0)


class DestinationResponse(CamelModel):
    parcel_id: int
    latitude: float
    longitude: float
    location_name: str
    order: int
    delivery_status: DeliveryStatus
    delivered_at: Optional[datetime]
    notes: Optional[str]


class TripResponse(CamelModel):
    """Schema for trip response."""
    id: int
    trip_id: str
    driver_id: int
    vehicle_id: int
    parcel_ids: List[int]
    assigned_by: Optional[str]
    status: TripStatus
    start_location: Optional[Dict[str, Any]]
    total_weight: Optional[float]
    notes: Optional[str]
    sos: bool = False
    delivery_destinations: List[DestinationResponse] = []
    assigned_at: datetime
    accepted_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int


class TripDetailResponse(CamelModel):
    """Trip hydrated with its driver, vehicle and parcels."""
    trip: TripResponse
    driver: Optional[DriverResponse]
    vehicle: Optional[VehicleResponse]
    parcels: List[ParcelResponse] = []


class TripStatusUpdate(CamelModel):
    status: TripStatus
    actor_id: Optional[str] = None


class DeliveryStatusUpdate(CamelModel):
    delivery_status: DeliveryStatus
    notes: Optional[str] = None


class TripReassign(CamelModel):
    new_driver_id: int
    new_vehicle_id: Optional[int] = None
    manager_id: str = Field(..., min_length=1, max_length=100)


class LocationUpdate(CamelModel):
    """Position ping from a driver on the road."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)
    progress: Optional[float] = Field(None, ge=0, le=100)


class SOSUpdate(CamelModel):
    sos: bool
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class OngoingTripResponse(CamelModel):
    trip_id: str
    tracking_id: str
    driver_id: int
    vehicle_id: int
    status: str
    progress: float
    last_known_location: Optional[Dict[str, Any]]
    started_at: datetime
    updated_at: datetime


class LiveTripResponse(CamelModel):
    """An accepted or in-progress trip with its live data, if on the road."""
    trip: TripResponse
    ongoing: Optional[OngoingTripResponse]
