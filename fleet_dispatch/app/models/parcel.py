"""
Parcel database model.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum
from fleet_dispatch.app.db.session import Base, utc_now
from fleet_dispatch.app.models.parcel_enums import ParcelStatus


class Parcel(Base):
    """
    Parcel model.

    A parcel belongs to at most one active trip at a time. The assignment
    columns are plain ids rather than relationships; hydration happens in
    the fleet repository.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parcel identification
    tracking_id = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    weight_kg = Column(Float, nullable=False)

    # Recipient contact (used for tracking messages)
    recipient_name = Column(String(255), nullable=False)
    recipient_phone = Column(String(30), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    recipient_address = Column(String(500), nullable=True)

    # Status
    status = Column(Enum(ParcelStatus), default=ParcelStatus.BOOKED, nullable=False, index=True)

    # Trip assignment
    trip_id = Column(String(100), nullable=True, index=True)
    assigned_driver_id = Column(Integer, nullable=True, index=True)
    assigned_vehicle_id = Column(Integer, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking='{self.tracking_id}', status='{self.status.value}')>"
