"""
Parcel Status Enumeration.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        BOOKED -> PENDING (on a trip) -> CONFIRMED (driver accepted)
        -> IN_TRANSIT -> DELIVERED
        Any status can transition to CANCELLED
    """
    BOOKED = "booked"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
