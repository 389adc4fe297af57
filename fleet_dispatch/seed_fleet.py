"""
Database seeding script for a demo fleet.

Creates two drivers, one vehicle and a handful of parcels so the dispatch
flow can be exercised against a fresh database.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fleet_dispatch.app.core.exceptions import ConflictError
from fleet_dispatch.app.db.session import AsyncSessionLocal, Base, engine
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.vehicle import Vehicle
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.trip_destination import TripDestination
from fleet_dispatch.app.models.ongoing_trip import OngoingTrip
from fleet_dispatch.app.models.notification import Notification
from fleet_dispatch.app.models.audit_log import AuditLog
from fleet_dispatch.app.models.dlq import DeadLetterQueue
from fleet_dispatch.app.services import fleet_registry as registry


DRIVERS = [
    {"name": "Dina Patel", "mobile": "+15550001", "email": "dina@fleet.local", "license": "DL-0001"},
    {"name": "Ravi Kumar", "mobile": "+15550002", "email": "ravi@fleet.local", "license": "DL-0002"},
]

PARCELS = [
    {"tracking_id": "TRK-0001", "weight_kg": 2.5, "recipient_name": "Asha", "recipient_phone": "+15559001"},
    {"tracking_id": "TRK-0002", "weight_kg": 4.0, "recipient_name": "Ben", "recipient_email": "ben@example.com"},
    {"tracking_id": "TRK-0003", "weight_kg": 1.2, "recipient_name": "Chen"},
]


async def seed_fleet():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting fleet seeding...")

        try:
            vehicle = await registry.create_vehicle(db, reg_number="MH-12-0001", model="Ace", vehicle_type="Van")
        except ConflictError:
            print("ℹ️  Demo fleet already exists, skipping seeding")
            return
        print(f"✅ Created vehicle {vehicle.reg_number} (id: {vehicle.id})")

        for data in DRIVERS:
            created = await registry.create_driver(db, password="driver123", is_available=True, **data)
            print(f"✅ Created driver {created.name} (id: {created.id})")

        for data in PARCELS:
            created = await registry.create_parcel(db, **data)
            print(f"✅ Created parcel {created.tracking_id} (id: {created.id})")

        print("\n🎉 Fleet seeding completed successfully!")
        print("\nNote: create trips with POST /v1/trips using the ids above")


if __name__ == "__main__":
    asyncio.run(seed_fleet())
