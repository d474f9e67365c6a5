"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample campus users
  - 3 vehicles (one per host)
  - 4 upcoming rides between campus landmarks
  - a few bookings, with shares split the way the booking engine splits them
"""

import asyncio
from datetime import date, time, timedelta

from sqlalchemy import text

from rideshare.config import settings
from rideshare.domain import fares
from rideshare.domain.enums import ParticipantStatus, RideStatus, VehicleType
from rideshare.domain.lifecycle import departure_instant, utcnow
from rideshare.infrastructure.database import async_session_factory, engine
from rideshare.infrastructure.models import (
    RideModel,
    RideParticipantModel,
    UserModel,
    VehicleModel,
)

UTC_OFFSET = timedelta(minutes=settings.campus_utc_offset_minutes)

USERS = [
    {"name": "Aarav Sharma", "email": "aarav@campus.edu", "rating": 4.8},
    {"name": "Priya Patel", "email": "priya@campus.edu", "rating": 4.9},
    {"name": "Rohan Mehta", "email": "rohan@campus.edu", "rating": 4.5},
    {"name": "Sneha Gupta", "email": "sneha@campus.edu", "rating": 4.7},
    {"name": "Vikram Singh", "email": "vikram@campus.edu", "rating": 4.6},
    {"name": "Ananya Reddy", "email": "ananya@campus.edu", "rating": 4.9},
    {"name": "Karan Joshi", "email": "karan@campus.edu", "rating": 4.3},
    {"name": "Meera Nair", "email": "meera@campus.edu", "rating": 4.8},
]

# host index -> vehicle type
VEHICLES = {0: VehicleType.CAR, 1: VehicleType.SUV, 2: VehicleType.AUTO}


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(name=u["name"], email=u["email"], rating=u["rating"])
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} users")

        # ── Vehicles ──────────────────────────────────────────────────
        vehicles = {}
        for host_idx, vehicle_type in VEHICLES.items():
            v = VehicleModel(user_id=user_models[host_idx].id, vehicle_type=vehicle_type)
            session.add(v)
            vehicles[host_idx] = v
        await session.flush()
        print(f"  Created {len(vehicles)} vehicles")

        # ── Rides ─────────────────────────────────────────────────────
        today = date.today()
        rides_data = [
            {
                "host": 0, "from": "Main Gate", "to": "Central Railway Station",
                "day": 1, "at": time(8, 30), "fare": "400.00", "max": 4,
                "riders": [3, 4],
            },
            {
                "host": 1, "from": "Hostel Block C", "to": "International Airport",
                "day": 2, "at": time(5, 45), "fare": "1200.00", "max": 6,
                "riders": [5],
            },
            {
                "host": 2, "from": "Library", "to": "City Mall",
                "day": 1, "at": time(17, 0), "fare": "150.00", "max": 3,
                "riders": [],
            },
            {
                "host": 0, "from": "Main Gate", "to": "Old Town Market",
                "day": 5, "at": time(10, 15), "fare": "300.00", "max": 4,
                "riders": [],
            },
        ]

        now = utcnow()
        bookings = 0
        for r in rides_data:
            start_date = today + timedelta(days=r["day"])
            ride = RideModel(
                driver_id=user_models[r["host"]].id,
                vehicle_id=vehicles[r["host"]].id,
                start_location=r["from"],
                end_location=r["to"],
                start_date=start_date,
                start_time=r["at"],
                departs_at=departure_instant(start_date, r["at"], UTC_OFFSET),
                total_fare=fares.to_decimal(r["fare"]),
                max_passengers=r["max"],
                status=RideStatus.OPEN,
            )
            session.add(ride)
            await session.flush()

            for booked, rider_idx in enumerate(r["riders"]):
                session.add(
                    RideParticipantModel(
                        ride_id=ride.id,
                        user_id=user_models[rider_idx].id,
                        status=ParticipantStatus.BOOKED,
                        share_fare=fares.compute_share(
                            ride.total_fare, fares.headcount(booked) + 1
                        ),
                        booking_time=now + timedelta(seconds=booked),
                    )
                )
                bookings += 1
        await session.flush()
        print(f"  Created {len(rides_data)} rides with {bookings} bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
