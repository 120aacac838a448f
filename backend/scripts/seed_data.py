"""Seed the database with sample hosts, listings, a driver's trip and guests.

Creates everything from scratch (tables included) so a fresh development
database can be used right away. Existing seed rows are removed first.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from stayride.auth.jwt import create_access_token
from stayride.database import Base, async_session_factory, engine
from stayride.models.booking import Booking
from stayride.models.listing import BlockedRange, Listing
from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.timeutils import utcnow

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

USERS = [
    {"email": "host@stayride.local", "name": "Rahim Host", "role": "host", "referral_code": "HOSTRAHIM"},
    {"email": "driver@stayride.local", "name": "Karim Driver", "role": "driver", "referral_code": "DRIVERKARIM"},
    {"email": "guest@stayride.local", "name": "Nadia Guest", "role": "guest", "referral_code": "GUESTNADIA"},
    {
        "email": "friend@stayride.local",
        "name": "Tariq Friend",
        "role": "guest",
        "referral_code": "GUESTTARIQ",
        "referred_by": "GUESTNADIA",
    },
    {"email": "admin@stayride.local", "name": "Ops Admin", "role": "admin", "referral_code": None},
]

LISTINGS = [
    {
        "title": "Hillside Cottage, Sreemangal",
        "description": "Two-bedroom cottage between the tea gardens with a wraparound veranda.",
        "location": "Sreemangal",
        "price": Decimal("2300.00"),
        "max_guests": 4,
    },
    {
        "title": "Beach Loft, Cox's Bazar",
        "description": "Top-floor loft two minutes from Kolatoli beach.",
        "location": "Cox's Bazar",
        "price": Decimal("3500.00"),
        "max_guests": 2,
    },
    {
        "title": "Old Town Studio, Dhaka",
        "description": "Compact studio near Lalbagh Fort, ideal for a short city stay.",
        "location": "Dhaka",
        "price": Decimal("1800.00"),
        "max_guests": 2,
    },
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        # ------------------------------------------------------------------
        # 1. Clean existing seed data
        # ------------------------------------------------------------------
        emails = [u["email"] for u in USERS]
        result = await session.execute(select(User.id).where(User.email.in_(emails)))
        existing_ids = list(result.scalars().all())
        if existing_ids:
            await session.execute(delete(Booking).where(Booking.guest_id.in_(existing_ids)))
            await session.execute(delete(Trip).where(Trip.driver_id.in_(existing_ids)))
            await session.execute(delete(Listing).where(Listing.host_id.in_(existing_ids)))
            await session.execute(delete(User).where(User.id.in_(existing_ids)))
            await session.flush()
            print(f"🧹 Removed {len(existing_ids)} existing seed users and their data")

        # ------------------------------------------------------------------
        # 2. Users
        # ------------------------------------------------------------------
        users: dict[str, User] = {}
        for user_data in USERS:
            user = User(**user_data)
            session.add(user)
            users[user.email] = user
        await session.flush()
        print(f"✅ Created {len(users)} users")

        host = users["host@stayride.local"]
        driver = users["driver@stayride.local"]

        # ------------------------------------------------------------------
        # 3. Listings, with a maintenance block on the first one
        # ------------------------------------------------------------------
        today = date.today()
        listings = []
        for listing_data in LISTINGS:
            listing = Listing(host_id=host.id, **listing_data)
            session.add(listing)
            listings.append(listing)
            print(f"   🏠 {listing.title} ({listing.price}/night)")
        await session.flush()

        session.add(
            BlockedRange(
                listing_id=listings[0].id,
                date_from=today + timedelta(days=60),
                date_to=today + timedelta(days=63),
                reason="Roof repairs",
            )
        )

        # ------------------------------------------------------------------
        # 4. A trip to the first listing
        # ------------------------------------------------------------------
        trip = Trip(
            driver_id=driver.id,
            origin="Dhaka",
            destination="Sreemangal",
            departure_at=utcnow() + timedelta(days=14),
            total_seats=4,
            fare_per_seat=Decimal("800.00"),
        )
        session.add(trip)
        await session.commit()

        print(f"   🚗 {trip.origin} → {trip.destination} ({trip.total_seats} seats, {trip.fare_per_seat}/seat)")
        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        for user in users.values():
            token = create_access_token({"sub": str(user.id)})
            print(f"   {user.role:<7} {user.email}")
            print(f"           token: {token}")
        print("=" * 60)
        print("🎉 Done! Use the tokens above as Bearer credentials.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
