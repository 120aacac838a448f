"""Availability ledger — can a listing or trip take another reservation?

Date ranges are half-open: ``date_from`` is the first night, ``date_to`` is
the checkout day and is not occupied. Two ranges ``[a, b)`` and ``[c, d)``
overlap iff ``a < d and c < b``, so a checkout and a check-in on the same
day never conflict. Host-blocked ranges use the same rule.

These functions only read. Callers that go on to write must hold the
listing (or trip) row lock, see ``lock_listing`` / ``lock_trip``, so that
the check and the write happen in one critical section.
"""

import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import ConflictError, NotFoundError
from stayride.models.booking import Booking
from stayride.models.listing import BlockedRange, Listing
from stayride.models.trip import Trip

BOOKED_MESSAGE = "This listing is already booked for those dates."
BLOCKED_MESSAGE = "Listing is temporarily unavailable for those dates."
SEATS_MESSAGE = "Not enough seats available"


def ranges_overlap(a_from: date, a_to: date, b_from: date, b_to: date) -> bool:
    """Half-open overlap test for ``[a_from, a_to)`` and ``[b_from, b_to)``."""
    return a_from < b_to and b_from < a_to


async def lock_listing(db: AsyncSession, listing_id: uuid.UUID) -> Listing:
    """Load a listing with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Listing).where(Listing.id == listing_id).with_for_update().execution_options(populate_existing=True)
    )
    listing = result.scalar_one_or_none()
    if listing is None:
        raise NotFoundError("Listing not found")
    return listing


async def lock_trip(db: AsyncSession, trip_id: uuid.UUID) -> Trip:
    """Load a trip with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id).with_for_update().execution_options(populate_existing=True)
    )
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFoundError("Trip not found")
    return trip


async def find_booking_conflict(
    db: AsyncSession,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
    exclude_booking_id: uuid.UUID | None = None,
) -> Booking | None:
    """Return a non-cancelled booking overlapping the range, if any."""
    query = select(Booking).where(
        Booking.listing_id == listing_id,
        Booking.status != "cancelled",
        Booking.date_from < date_to,
        Booking.date_to > date_from,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query.limit(1))
    return result.scalars().first()


async def find_blocked_conflict(
    db: AsyncSession,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
) -> BlockedRange | None:
    """Return a host-blocked range overlapping the requested dates, if any."""
    result = await db.execute(
        select(BlockedRange)
        .where(
            BlockedRange.listing_id == listing_id,
            BlockedRange.date_from < date_to,
            BlockedRange.date_to > date_from,
        )
        .limit(1)
    )
    return result.scalars().first()


async def is_available(
    db: AsyncSession,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
    exclude_booking_id: uuid.UUID | None = None,
) -> bool:
    """True when neither a booking nor a blocked range overlaps the dates."""
    if await find_blocked_conflict(db, listing_id, date_from, date_to) is not None:
        return False
    conflict = await find_booking_conflict(db, listing_id, date_from, date_to, exclude_booking_id)
    return conflict is None


async def ensure_available(
    db: AsyncSession,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
    exclude_booking_id: uuid.UUID | None = None,
) -> None:
    """Raise ``ConflictError`` with a guest-facing message when unavailable."""
    if await find_blocked_conflict(db, listing_id, date_from, date_to) is not None:
        raise ConflictError(BLOCKED_MESSAGE)
    if await find_booking_conflict(db, listing_id, date_from, date_to, exclude_booking_id) is not None:
        raise ConflictError(BOOKED_MESSAGE)


def ensure_seats(trip: Trip, seats: int) -> None:
    """Raise ``ConflictError`` if ``seats`` exceed what the trip has left."""
    if trip.status == "cancelled":
        raise ConflictError("Trip has been cancelled")
    if seats > trip.seats_available:
        raise ConflictError(SEATS_MESSAGE)
