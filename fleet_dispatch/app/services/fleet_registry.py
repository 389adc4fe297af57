"""
Fleet registry.

Thin create/list operations for drivers, vehicles and parcels. Dispatch
state on these records is owned by the assignment coordinator and the
trip state machine, never by the registry.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dispatch.app.core.exceptions import ConflictError
from fleet_dispatch.app.core.security import get_password_hash
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.models.vehicle import Vehicle

logger = logging.getLogger("fleet_dispatch.registry")


async def create_driver(
    db: AsyncSession,
    name: str,
    mobile: str,
    email: str,
    license: str,
    password: str,
    is_available: bool = False,
) -> Driver:
    """
    Register a driver. The password is hashed here, before the first
    persist; plain passwords never reach the model.
    """
    result = await db.execute(
        select(Driver).where(
            or_(Driver.mobile == mobile, Driver.email == email, Driver.license == license)
        )
    )
    if result.scalars().first() is not None:
        raise ConflictError(
            "A driver with this mobile, email or license already exists",
            details={"mobile": mobile, "email": email}
        )

    driver = Driver(
        name=name,
        mobile=mobile,
        email=email,
        license=license,
        hashed_password=get_password_hash(password),
        is_available=is_available,
        driver_status=DriverStatus.AVAILABLE if is_available else DriverStatus.OFFLINE,
        is_active=True,
    )
    db.add(driver)
    await db.commit()
    logger.info("Registered driver %s", driver.id)
    return driver


async def list_drivers(
    db: AsyncSession,
    status: Optional[DriverStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Driver]:
    query = select(Driver).where(Driver.is_active == True)
    if status is not None:
        query = query.where(Driver.driver_status == status)
    result = await db.execute(query.order_by(Driver.id).offset(offset).limit(limit))
    return list(result.scalars().all())


async def create_vehicle(
    db: AsyncSession,
    reg_number: str,
    model: str,
    vehicle_type: str,
    capacity: Optional[str] = None,
) -> Vehicle:
    result = await db.execute(select(Vehicle).where(Vehicle.reg_number == reg_number))
    if result.scalar_one_or_none() is not None:
        raise ConflictError(
            f"Vehicle '{reg_number}' already exists",
            details={"reg_number": reg_number}
        )

    vehicle = Vehicle(
        reg_number=reg_number,
        model=model,
        vehicle_type=vehicle_type,
        capacity=capacity,
        status=VehicleStatus.ACTIVE,
    )
    db.add(vehicle)
    await db.commit()
    return vehicle


async def list_vehicles(
    db: AsyncSession,
    status: Optional[VehicleStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Vehicle]:
    query = select(Vehicle)
    if status is not None:
        query = query.where(Vehicle.status == status)
    result = await db.execute(query.order_by(Vehicle.id).offset(offset).limit(limit))
    return list(result.scalars().all())


async def create_parcel(
    db: AsyncSession,
    tracking_id: str,
    weight_kg: float,
    recipient_name: str,
    recipient_phone: Optional[str] = None,
    recipient_email: Optional[str] = None,
    recipient_address: Optional[str] = None,
    description: Optional[str] = None,
) -> Parcel:
    result = await db.execute(select(Parcel).where(Parcel.tracking_id == tracking_id))
    if result.scalar_one_or_none() is not None:
        raise ConflictError(
            f"Parcel with tracking id '{tracking_id}' already exists",
            details={"tracking_id": tracking_id}
        )

    parcel = Parcel(
        tracking_id=tracking_id,
        description=description,
        weight_kg=weight_kg,
        recipient_name=recipient_name,
        recipient_phone=recipient_phone,
        recipient_email=recipient_email,
        recipient_address=recipient_address,
        status=ParcelStatus.BOOKED,
    )
    db.add(parcel)
    await db.commit()
    return parcel


async def list_parcels(
    db: AsyncSession,
    status: Optional[ParcelStatus] = None,
    trip_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Parcel]:
    query = select(Parcel)
    if status is not None:
        query = query.where(Parcel.status == status)
    if trip_id is not None:
        query = query.where(Parcel.trip_id == trip_id)
    result = await db.execute(query.order_by(Parcel.id).offset(offset).limit(limit))
    return list(result.scalars().all())
