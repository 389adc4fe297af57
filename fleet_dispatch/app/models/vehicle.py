"""
Vehicle database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from fleet_dispatch.app.db.session import Base, utc_now
from fleet_dispatch.app.models.enums import VehicleStatus


class Vehicle(Base):
    """
    Vehicle model.

    `driver_id` is a weak back-reference to the driver currently linked to
    the vehicle; it carries no ownership and no foreign key cascade.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Vehicle identification
    reg_number = Column(String(100), unique=True, nullable=False, index=True)
    model = Column(String(100), nullable=False)
    vehicle_type = Column(String(100), nullable=False)  # e.g., "Truck", "Van"
    capacity = Column(String(100), nullable=True)

    # Status
    status = Column(Enum(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False, index=True)
    current_trip_id = Column(String(100), nullable=True, index=True)
    driver_id = Column(Integer, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, reg='{self.reg_number}', status='{self.status.value}')>"
