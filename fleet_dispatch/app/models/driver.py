"""
Driver database model.

Drivers receive trip offers and execute trips.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from fleet_dispatch.app.db.session import Base, utc_now
from fleet_dispatch.app.models.enums import DriverStatus


class Driver(Base):
    """
    Driver model.

    `driver_status` and `current_trip_id` are written by the assignment
    coordinator and the trip state machine; `is_available` mirrors the
    punch clock. Drivers are never deleted, only deactivated.
    """
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity
    name = Column(String(255), nullable=False)
    mobile = Column(String(30), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    license = Column(String(100), unique=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Dispatch state
    is_available = Column(Boolean, default=False, nullable=False)
    driver_status = Column(Enum(DriverStatus), default=DriverStatus.OFFLINE, nullable=False, index=True)
    current_trip_id = Column(String(100), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.name}', status='{self.driver_status.value}')>"
