"""Payout operations — what operators read and settle from the payout ledger."""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import NotFoundError
from stayride.models.booking import Booking
from stayride.models.payout import DriverPayout, Payout
from stayride.services.availability import lock_trip
from stayride.services.booking_service import flush_booking, get_booking_for_update
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)


async def list_pending_payouts(db: AsyncSession) -> list[Payout]:
    result = await db.execute(select(Payout).where(Payout.status == "pending").order_by(Payout.created_at))
    return list(result.scalars().all())


async def list_pending_driver_payouts(db: AsyncSession) -> list[DriverPayout]:
    result = await db.execute(
        select(DriverPayout).where(DriverPayout.status == "pending").order_by(DriverPayout.created_at)
    )
    return list(result.scalars().all())


async def mark_payout_paid(
    db: AsyncSession,
    payout_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> Payout:
    """Record that the host was paid and flag the booking as settled.

    Marking an already paid payout again leaves it unchanged.
    """
    result = await db.execute(select(Payout).where(Payout.id == payout_id).with_for_update())
    payout = result.scalar_one_or_none()
    if payout is None:
        raise NotFoundError("Payout not found")
    if payout.status == "paid":
        logger.info("Payout %s already marked as paid", payout.id)
        return payout

    payout.status = "paid"
    payout.paid_at = now or utcnow()
    booking = await get_booking_for_update(db, payout.booking_id)
    booking.payout_issued = True
    await flush_booking(db)

    logger.info("Payout %s of %s for booking %s marked as paid", payout.id, payout.amount, payout.booking_id)
    return payout


async def mark_driver_payout_paid(
    db: AsyncSession,
    payout_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> DriverPayout:
    result = await db.execute(select(DriverPayout).where(DriverPayout.id == payout_id).with_for_update())
    payout = result.scalar_one_or_none()
    if payout is None:
        raise NotFoundError("Driver payout not found")
    if payout.status == "paid":
        logger.info("Driver payout %s already marked as paid", payout.id)
        return payout

    payout.status = "paid"
    payout.paid_at = now or utcnow()
    trip = await lock_trip(db, payout.trip_id)
    trip.payout_issued = True
    await db.flush()

    logger.info("Driver payout %s of %s for trip %s marked as paid", payout.id, payout.amount, payout.trip_id)
    return payout


async def list_overdue_payouts(
    db: AsyncSession,
    *,
    overdue_hours: int = 24,
    now: datetime | None = None,
) -> list[Booking]:
    """Paid bookings checked in more than ``overdue_hours`` ago with no payout issued."""
    cutoff = (now or utcnow()) - timedelta(hours=overdue_hours)
    result = await db.execute(
        select(Booking)
        .where(
            Booking.payment_status == "paid",
            Booking.check_in_at <= cutoff,
            Booking.payout_issued.is_(False),
        )
        .order_by(Booking.check_in_at)
    )
    return list(result.scalars().all())
