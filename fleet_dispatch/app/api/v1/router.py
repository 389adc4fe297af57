"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fleet_dispatch.app.api.v1.endpoints import admin_ops, fleet, notifications, trips

router = APIRouter()

# Registry glue
router.include_router(fleet.driver_router)
router.include_router(fleet.vehicle_router)
router.include_router(fleet.parcel_router)

# Dispatch core
router.include_router(trips.router)
router.include_router(notifications.router)

# Ops endpoints
router.include_router(admin_ops.router)
