"""
Ongoing trip model.

Live position and progress of a trip on the road. One row exists per
trip from the start of its journey until it completes or is closed by
an override.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, JSON
from fleet_dispatch.app.db.session import Base, utc_now


class OngoingTrip(Base):
    __tablename__ = "ongoing_trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(String(100), unique=True, nullable=False, index=True)
    tracking_id = Column(String(100), nullable=False)  # first parcel's tracking id

    driver_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False)

    status = Column(String(50), default="in_transit", nullable=False)
    progress = Column(Float, default=0, nullable=False)  # percent
    last_known_location = Column(JSON, nullable=True)  # {latitude, longitude, address}

    started_at = Column(DateTime, default=utc_now, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<OngoingTrip(trip_id='{self.trip_id}', progress={self.progress})>"
