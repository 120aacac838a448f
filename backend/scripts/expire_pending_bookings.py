"""Expire pending bookings that were never paid.

Meant to run from cron (or any scheduler) a few times a day. Bookings still
``pending`` with no completed payment ``PENDING_BOOKING_TTL_DAYS`` after
creation are marked ``expired`` and both parties are notified.

Run inside Docker:
    docker compose exec backend python -m scripts.expire_pending_bookings
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stayride.config import settings
from stayride.database import async_session_factory, engine
from stayride.services.booking_service import expire_stale_bookings
from stayride.services.notifier import Notifier
from stayride.services.side_effects import run_outbox


async def expire() -> None:
    print(f"⏳ Expiring pending bookings older than {settings.pending_booking_ttl_days} days...")

    async with async_session_factory() as session:
        expired = await expire_stale_bookings(session, ttl_days=settings.pending_booking_ttl_days)
        await session.commit()

    for booking in expired:
        print(f"   ⌛ {booking.id} — {booking.listing.title} ({booking.date_from} to {booking.date_to})")
    print(f"✅ Expired {len(expired)} bookings")

    # Notifications were queued in the same transaction; deliver them now.
    result = await run_outbox(async_session_factory, Notifier(), settings)
    print(f"📬 Notifications sent={result.sent} failed={result.failed}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(expire())
