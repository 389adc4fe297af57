"""
Fleet registry API Endpoints.

Create and read drivers, vehicles and parcels.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fleet_dispatch.app.db.session import get_db
from fleet_dispatch.app.models.enums import DriverStatus, VehicleStatus
from fleet_dispatch.app.models.parcel_enums import ParcelStatus
from fleet_dispatch.app.schemas.fleet import (
    DriverCreate,
    DriverResponse,
    ParcelCreate,
    ParcelResponse,
    VehicleCreate,
    VehicleResponse,
)
from fleet_dispatch.app.services import fleet_registry as registry
from fleet_dispatch.app.services import fleet_repository as repo

driver_router = APIRouter(prefix="/drivers", tags=["Fleet - Drivers"])
vehicle_router = APIRouter(prefix="/vehicles", tags=["Fleet - Vehicles"])
parcel_router = APIRouter(prefix="/parcels", tags=["Fleet - Parcels"])


@driver_router.post("", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def register_driver(req: DriverCreate, db: AsyncSession = Depends(get_db)):
    return await registry.create_driver(
        db,
        name=req.name,
        mobile=req.mobile,
        email=req.email,
        license=req.license,
        password=req.password,
        is_available=req.is_available,
    )


@driver_router.get("", response_model=List[DriverResponse])
async def list_drivers(
    driver_status: Optional[DriverStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    return await registry.list_drivers(db, status=driver_status, limit=limit, offset=offset)


@driver_router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(driver_id: int = Path(...), db: AsyncSession = Depends(get_db)):
    return await repo.get_driver(db, driver_id)


@vehicle_router.post("", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def register_vehicle(req: VehicleCreate, db: AsyncSession = Depends(get_db)):
    return await registry.create_vehicle(
        db,
        reg_number=req.reg_number,
        model=req.model,
        vehicle_type=req.vehicle_type,
        capacity=req.capacity,
    )


@vehicle_router.get("", response_model=List[VehicleResponse])
async def list_vehicles(
    vehicle_status: Optional[VehicleStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    return await registry.list_vehicles(db, status=vehicle_status, limit=limit, offset=offset)


@vehicle_router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(vehicle_id: int = Path(...), db: AsyncSession = Depends(get_db)):
    return await repo.get_vehicle(db, vehicle_id)


@parcel_router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def book_parcel(req: ParcelCreate, db: AsyncSession = Depends(get_db)):
    return await registry.create_parcel(db, **req.model_dump())


@parcel_router.get("", response_model=List[ParcelResponse])
async def list_parcels(
    parcel_status: Optional[ParcelStatus] = Query(None, alias="status"),
    trip_id: Optional[str] = Query(None, alias="tripId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    return await registry.list_parcels(db, status=parcel_status, trip_id=trip_id, limit=limit, offset=offset)


@parcel_router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(parcel_id: int = Path(...), db: AsyncSession = Depends(get_db)):
    return await repo.get_parcel(db, parcel_id)
