"""
Trip database model.

A trip assigns one driver and one vehicle to deliver a set of parcels
to ordered destinations.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, Text, Boolean
from sqlalchemy.orm import relationship
from fleet_dispatch.app.db.session import Base, utc_now
from fleet_dispatch.app.models.trip_enums import TripStatus
from fleet_dispatch.app.models.trip_destination import TripDestination


class Trip(Base):
    """
    Trip model.

    `trip_id` is the business key every other record refers to.
    `destinations` is a permutation of `parcel_ids` ordered by sequence.
    `version` backs optimistic concurrency: a stale write raises
    StaleDataError at flush.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(String(100), unique=True, nullable=False, index=True)

    # Assignment
    driver_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False, index=True)
    parcel_ids = Column(JSON, nullable=False, default=list)
    assigned_by = Column(String(100), nullable=True)  # manager id

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.PENDING, nullable=False, index=True)

    # Route details
    start_location = Column(JSON, nullable=True)  # {latitude, longitude, address}
    total_weight = Column(Float, nullable=True, default=0)
    notes = Column(Text, nullable=True)
    sos = Column(Boolean, default=False, nullable=False)

    # Lifecycle timestamps
    assigned_at = Column(DateTime, default=utc_now, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    version = Column(Integer, nullable=False)

    destinations = relationship(
        TripDestination,
        order_by=TripDestination.sequence_number,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def delivery_destinations(self):
        return self.destinations

    def destination_for(self, parcel_id: int):
        for destination in self.destinations:
            if destination.parcel_id == parcel_id:
                return destination
        return None

    def __repr__(self):
        return f"<Trip(trip_id='{self.trip_id}', driver_id={self.driver_id}, status='{self.status.value}')>"
