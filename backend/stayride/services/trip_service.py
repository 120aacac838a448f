"""Seat reservations on trips.

Reservations lock the trip row before counting seats, so the sum of active
passenger seats can never exceed ``total_seats`` however many requests
race for the last seat.
"""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import ValidationError
from stayride.models.trip import Trip, TripPassenger
from stayride.models.user import User
from stayride.services.availability import ensure_seats, lock_trip
from stayride.services.fees import to_money
from stayride.services.outbox import enqueue_notification
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)


def _active_reservation(trip: Trip, user_id: uuid.UUID) -> TripPassenger | None:
    for passenger in trip.passengers:
        if passenger.user_id == user_id and passenger.status != "cancelled":
            return passenger
    return None


async def reserve_seats(
    db: AsyncSession,
    trip_id: uuid.UUID,
    actor: User,
    seats: int = 1,
    *,
    now: datetime | None = None,
) -> Trip:
    current = now or utcnow()
    if seats < 1:
        raise ValidationError("At least one seat is required")

    trip = await lock_trip(db, trip_id)
    if trip.driver_id == actor.id:
        raise ValidationError("Drivers cannot reserve seats on their own trip")
    if trip.departure_at <= current:
        raise ValidationError("Trip has already departed")
    if _active_reservation(trip, actor.id) is not None:
        raise ValidationError("Already reserved")
    ensure_seats(trip, seats)

    trip.passengers.append(TripPassenger(user_id=actor.id, seats=seats, status="reserved"))
    if trip.seats_available == 0:
        trip.status = "booked"
    await db.flush()

    await enqueue_notification(
        db,
        "seat_reserved",
        {
            "seats": seats,
            "origin": trip.origin,
            "destination": trip.destination,
            "departure_at": trip.departure_at,
            "total": to_money(trip.fare_per_seat * seats),
        },
        user_id=actor.id,
    )
    logger.info("User %s reserved %d seat(s) on trip %s", actor.id, seats, trip.id)
    return trip


async def cancel_reservation(
    db: AsyncSession,
    trip_id: uuid.UUID,
    actor: User,
    reason: str | None = None,
    *,
    cutoff_hours: int = 24,
    now: datetime | None = None,
) -> Trip:
    """Cancel the actor's active reservation, refused close to departure."""
    current = now or utcnow()
    trip = await lock_trip(db, trip_id)
    if trip.departure_at - current < timedelta(hours=cutoff_hours):
        raise ValidationError(f"Cancellation not allowed within {cutoff_hours} hours of trip departure.")

    passenger = _active_reservation(trip, actor.id)
    if passenger is None:
        raise ValidationError("No active reservation found")

    passenger.status = "cancelled"
    passenger.cancelled_at = current
    passenger.cancel_reason = reason or "No reason provided"
    if trip.status == "booked" and trip.seats_available > 0:
        trip.status = "available"
    await db.flush()

    logger.info("User %s cancelled %d seat(s) on trip %s", actor.id, passenger.seats, trip.id)
    return trip
