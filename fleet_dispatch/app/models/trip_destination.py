"""
Trip destination database model.

One delivery stop per parcel, with its own delivery status.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, Text
from fleet_dispatch.app.db.session import Base, utc_now
from fleet_dispatch.app.models.trip_enums import DeliveryStatus


class TripDestination(Base):
    """
    Trip destination model.

    Owned by its trip (deleted with it). The trip's completion is rolled
    up from the delivery status of all its destinations.
    """
    __tablename__ = "trip_destinations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_pk = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)
    parcel_id = Column(Integer, nullable=False, index=True)

    # Stop details
    sequence_number = Column(Integer, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location_name = Column(String(500), nullable=False)

    # Status
    delivery_status = Column(Enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False)
    delivered_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    @property
    def order(self) -> int:
        return self.sequence_number

    def as_location(self) -> dict:
        """Snapshot embedded in notifications."""
        return {
            "parcel_id": self.parcel_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "order": self.sequence_number,
            "location_name": self.location_name,
        }

    def __repr__(self):
        return f"<TripDestination(trip_pk={self.trip_pk}, parcel_id={self.parcel_id}, status='{self.delivery_status.value}')>"
