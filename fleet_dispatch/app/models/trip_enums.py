"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PENDING = "pending"  # Offered to a driver, awaiting a decision
    ACCEPTED = "accepted"  # Driver accepted, journey not started
    IN_PROGRESS = "in_progress"  # Journey started
    COMPLETED = "completed"  # Every destination delivered or failed
    CANCELLED = "cancelled"  # Administrative cancellation
    DECLINED = "declined"  # Driver declined, awaiting reassignment


ACTIVE_TRIP_STATUSES = (TripStatus.PENDING, TripStatus.ACCEPTED, TripStatus.IN_PROGRESS)
TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)


class DeliveryStatus(str, enum.Enum):
    """Delivery destination status enumeration."""
    PENDING = "pending"  # Not yet on the road
    IN_TRANSIT = "in_transit"  # Trip started
    DELIVERED = "delivered"
    FAILED = "failed"


FINISHED_DELIVERY_STATUSES = (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)
