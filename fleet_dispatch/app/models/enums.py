"""
Fleet resource status enumerations.

Defines the availability states of drivers and vehicles.
"""

import enum


class DriverStatus(str, enum.Enum):
    """
    Driver dispatch status.

    Flow:
        available -> pending (offered) -> accepted -> on_trip -> available
        pending -> available (declined)
    offline / off_duty are owned by the punch clock.
    """
    OFFLINE = "offline"
    AVAILABLE = "available"
    PENDING = "pending"
    ACCEPTED = "accepted"
    ON_TRIP = "on_trip"
    OFF_DUTY = "off_duty"


class VehicleStatus(str, enum.Enum):
    """
    Vehicle status enumeration.

    ACTIVE is the vehicle's available state. ASSIGNED means reserved to a
    trip that has not been confirmed by a driver yet.
    """
    ACTIVE = "active"
    ASSIGNED = "assigned"
    TRIP_CONFIRMED = "trip_confirmed"
    ON_TRIP = "on_trip"
    MAINTENANCE = "maintenance"
    IN_SERVICE = "in_service"
    SOLD = "sold"
