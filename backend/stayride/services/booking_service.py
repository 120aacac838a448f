"""Booking aggregate — creation and lifecycle transitions.

Lifecycle (``status``): ``pending`` → ``confirmed`` | ``cancelled`` |
``expired``. Payment progress lives on the independent ``payment_status``
axis and is driven by ``stayride.services.payment_service``.

Every mutation loads the booking with ``FOR UPDATE`` (see
``get_booking_for_update``) and flushes through ``flush_booking`` so a lost
update detected by the ``version`` column surfaces as ``ConflictError``.
Notifications are queued on the outbox and delivered after commit.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from stayride.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from stayride.models.booking import TERMINAL_BOOKING_STATUSES, Booking
from stayride.models.listing import BlockedRange, Listing
from stayride.models.promo_code import PromoCode
from stayride.models.trip import TripPassenger
from stayride.models.user import User
from stayride.services.availability import ensure_available, ensure_seats, lock_listing, lock_trip
from stayride.services.fees import (
    ZERO,
    CombinedOrderTotal,
    FeeSchedule,
    combined_order_total,
    stay_payout_split,
    stay_totals,
    to_money,
)
from stayride.services.outbox import enqueue_notification
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def flush_booking(db: AsyncSession) -> None:
    """Flush pending changes, turning a lost update into ``ConflictError``."""
    try:
        await db.flush()
    except StaleDataError as exc:
        raise ConflictError("Booking was changed by another request, please retry") from exc


async def get_booking_for_update(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    """Load a booking with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def booking_context(booking: Booking, **extra: object) -> dict:
    """Template data shared by every booking notification."""
    data = {
        "booking_id": booking.id,
        "guest_name": booking.guest.name,
        "listing_title": booking.listing.title,
        "date_from": booking.date_from,
        "date_to": booking.date_to,
        "nights": booking.nights,
        "price": booking.price,
    }
    data.update(extra)
    return data


def is_host(booking: Booking, actor: User) -> bool:
    return booking.listing.host_id == actor.id


def is_guest(booking: Booking, actor: User) -> bool:
    return booking.guest_id == actor.id


def _validate_stay(date_from: date, date_to: date, guests: int, current: date) -> int:
    if date_from < current or date_to <= date_from:
        raise ValidationError("Invalid booking dates. Cannot book in the past.")
    if guests < 1:
        raise ValidationError("At least one guest is required")
    return (date_to - date_from).days


def _check_listing(listing: Listing, guest: User, guests: int) -> None:
    if not listing.is_active:
        raise ValidationError("Listing is not accepting bookings")
    if listing.host_id == guest.id:
        raise ValidationError("Hosts cannot book their own listing")
    if guests > listing.max_guests:
        raise ValidationError("Too many guests for this listing.")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_booking(
    db: AsyncSession,
    guest: User,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
    guests: int,
    *,
    now: datetime | None = None,
) -> Booking:
    """Reserve a listing for ``[date_from, date_to)`` as ``pending/unpaid``.

    The listing row stays locked until the caller commits, so two requests
    for overlapping dates cannot both pass the availability check.
    """
    current = now or utcnow()
    nights = _validate_stay(date_from, date_to, guests, current.date())

    listing = await lock_listing(db, listing_id)
    _check_listing(listing, guest, guests)
    await ensure_available(db, listing.id, date_from, date_to)

    totals = stay_totals(listing.price, nights)
    booking = Booking(
        guest=guest,
        listing=listing,
        trip=None,
        date_from=date_from,
        date_to=date_to,
        nights=nights,
        guests=guests,
        price_per_night=totals.price_per_night,
        price=totals.subtotal,
        status="pending",
        payment_status="unpaid",
    )
    db.add(booking)
    await flush_booking(db)

    logger.info(
        "Booking %s created: listing=%s guest=%s %s..%s price=%s",
        booking.id,
        listing.id,
        guest.id,
        date_from,
        date_to,
        booking.price,
    )
    return booking


@dataclass(frozen=True)
class CombinedBooking:
    booking: Booking
    breakdown: CombinedOrderTotal


async def _redeem_promo(db: AsyncSession, code: str, guest: User, stay_subtotal: Decimal, now: datetime) -> Decimal:
    result = await db.execute(select(PromoCode).where(PromoCode.code == code).with_for_update())
    promo = result.scalar_one_or_none()
    if promo is None:
        raise ValidationError("Invalid promo code")
    if promo.expires_at < now:
        raise ValidationError("Promo code has expired")
    if promo.used_count >= promo.usage_limit:
        raise ValidationError("Promo code has already been used")
    if promo.issued_to_id is not None and promo.issued_to_id != guest.id:
        raise ValidationError("Promo code belongs to another account")

    promo.used_count += 1
    if promo.discount_type == "percent":
        return to_money(stay_subtotal * promo.discount / Decimal("100"))
    return to_money(promo.discount)


async def create_combined_booking(
    db: AsyncSession,
    guest: User,
    listing_id: uuid.UUID,
    date_from: date,
    date_to: date,
    guests: int,
    schedule: FeeSchedule,
    *,
    trip_id: uuid.UUID | None = None,
    promo_code: str | None = None,
    now: datetime | None = None,
) -> CombinedBooking:
    """Book a stay and, optionally, ``guests`` seats on a trip as one order.

    The stay is validated exactly like ``create_booking``; the trip row is
    locked before its seats are counted. The order is priced with
    ``combined_order_total`` and the booking's ``price`` is the order total.
    """
    current = now or utcnow()
    nights = _validate_stay(date_from, date_to, guests, current.date())

    listing = await lock_listing(db, listing_id)
    _check_listing(listing, guest, guests)
    await ensure_available(db, listing.id, date_from, date_to)

    trip = None
    trip_fare = ZERO
    if trip_id is not None:
        trip = await lock_trip(db, trip_id)
        ensure_seats(trip, guests)
        trip_fare = to_money(trip.fare_per_seat * guests)

    totals = stay_totals(listing.price, nights)
    discount = ZERO
    if promo_code:
        discount = await _redeem_promo(db, promo_code, guest, totals.subtotal, current)
    breakdown = combined_order_total(totals.subtotal, trip_fare, discount, schedule)

    booking = Booking(
        guest=guest,
        listing=listing,
        trip=trip,
        date_from=date_from,
        date_to=date_to,
        nights=nights,
        guests=guests,
        seats=guests if trip is not None else 0,
        combined=trip is not None,
        promo_code=promo_code,
        discount=breakdown.discount,
        price_per_night=totals.price_per_night,
        price=breakdown.total,
        status="pending",
        payment_status="unpaid",
    )
    db.add(booking)
    await flush_booking(db)

    if trip is not None:
        trip.passengers.append(TripPassenger(user_id=guest.id, booking_id=booking.id, seats=guests))
        if trip.seats_available == 0:
            trip.status = "booked"
        await db.flush()

    logger.info(
        "Combined booking %s created: listing=%s trip=%s guest=%s total=%s",
        booking.id,
        listing.id,
        trip_id,
        guest.id,
        booking.price,
    )
    return CombinedBooking(booking=booking, breakdown=breakdown)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------


async def accept_booking(db: AsyncSession, booking_id: uuid.UUID, actor: User) -> Booking:
    """Host confirms a pending booking. Payment status is left untouched."""
    booking = await get_booking_for_update(db, booking_id)
    if not is_host(booking, actor):
        raise AuthorizationError("Only the listing's host can accept this booking")
    if booking.status != "pending":
        raise ValidationError(f"Cannot accept a booking that is {booking.status}")

    booking.status = "confirmed"
    await flush_booking(db)

    await enqueue_notification(
        db,
        "booking_accepted",
        booking_context(booking),
        user_id=booking.guest_id,
        booking_id=booking.id,
    )
    logger.info("Booking %s accepted by host %s", booking.id, actor.id)
    return booking


def _release_seats(booking: Booking, reason: str, now: datetime) -> None:
    trip = booking.trip
    if trip is None:
        return
    for passenger in trip.passengers:
        if passenger.booking_id == booking.id and passenger.status != "cancelled":
            passenger.status = "cancelled"
            passenger.cancelled_at = now
            passenger.cancel_reason = reason
    if trip.status == "booked" and trip.seats_available > 0:
        trip.status = "available"


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    *,
    now: datetime | None = None,
) -> Booking:
    """Cancel from any non-terminal state; the other party is notified."""
    current = now or utcnow()
    booking = await get_booking_for_update(db, booking_id)
    actor_is_host = is_host(booking, actor)
    if not actor_is_host and not is_guest(booking, actor):
        raise AuthorizationError("Unauthorized to cancel this booking")
    if booking.status in TERMINAL_BOOKING_STATUSES:
        raise ValidationError(f"Booking is already {booking.status}")

    booking.status = "cancelled"
    booking.cancelled_at = current
    booking.cancelled_by_id = actor.id
    _release_seats(booking, "booking cancelled", current)
    await flush_booking(db)

    recipient_id = booking.guest_id if actor_is_host else booking.listing.host_id
    await enqueue_notification(
        db,
        "booking_cancelled",
        booking_context(booking, cancelled_by=actor.name),
        user_id=recipient_id,
        booking_id=booking.id,
    )
    logger.info(
        "Booking %s cancelled by %s (%s)",
        booking.id,
        actor.id,
        "host" if actor_is_host else "guest",
    )
    return booking


async def check_in(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    *,
    now: datetime | None = None,
) -> Booking:
    current = now or utcnow()
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Only the booking's guest can check in")
    if booking.status in TERMINAL_BOOKING_STATUSES:
        raise ValidationError(f"Cannot check in to a booking that is {booking.status}")
    if current.date() < booking.date_from:
        raise ValidationError("Too early to check in")
    if booking.is_checked_in:
        raise ValidationError("Already checked in")

    booking.check_in_at = current
    await flush_booking(db)

    await enqueue_notification(
        db,
        "checked_in",
        booking_context(booking),
        user_id=booking.listing.host_id,
        booking_id=booking.id,
    )
    logger.info("Booking %s checked in", booking.id)
    return booking


async def check_out(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    schedule: FeeSchedule,
    *,
    review_url: str = "",
    now: datetime | None = None,
) -> Booking:
    """Guest checks out. The host is told what payout to expect.

    The payout itself was recorded when the payment succeeded.
    """
    current = now or utcnow()
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Only the booking's guest can check out")
    if current.date() < booking.date_to:
        raise ValidationError("Too early to check out")
    if not booking.is_checked_in:
        raise ValidationError("Cannot check out before checking in")
    if booking.check_out_at is not None:
        raise ValidationError("Already checked out")

    booking.check_out_at = current
    await flush_booking(db)

    gross = booking.paid_amount if booking.paid_amount > ZERO else booking.price
    split = stay_payout_split(gross, schedule)
    await enqueue_notification(
        db,
        "checked_out",
        booking_context(booking, host_payout=split.host_payout),
        user_id=booking.listing.host_id,
        booking_id=booking.id,
    )
    await enqueue_notification(
        db,
        "leave_review",
        booking_context(booking, review_link=f"{review_url}?booking={booking.id}"),
        user_id=booking.guest_id,
        booking_id=booking.id,
    )
    logger.info("Booking %s checked out", booking.id)
    return booking


async def expire_stale_bookings(
    db: AsyncSession,
    *,
    ttl_days: int = 3,
    now: datetime | None = None,
) -> list[Booking]:
    """Expire ``pending`` bookings older than ``ttl_days`` with no payment.

    Safe to re-run: an expired booking is no longer ``pending`` so it is
    neither transitioned nor notified twice.
    """
    current = now or utcnow()
    threshold = current - timedelta(days=ttl_days)
    result = await db.execute(
        select(Booking)
        .where(
            Booking.status == "pending",
            Booking.payment_status.in_(("unpaid", "pending")),
            Booking.created_at < threshold,
        )
        .order_by(Booking.created_at)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )
    expired = list(result.scalars().all())

    for booking in expired:
        booking.status = "expired"
        booking.expired_at = current
        _release_seats(booking, "booking expired", current)
    await flush_booking(db)

    for booking in expired:
        data = booking_context(booking, ttl_days=ttl_days)
        await enqueue_notification(db, "booking_expired", data, user_id=booking.guest_id, booking_id=booking.id)
        await enqueue_notification(db, "booking_expired", data, user_id=booking.listing.host_id, booking_id=booking.id)

    if expired:
        logger.info("%d pending bookings marked as expired", len(expired))
    return expired


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def can_view(booking: Booking, actor: User) -> bool:
    if actor.is_admin or is_guest(booking, actor) or is_host(booking, actor):
        return True
    return booking.trip is not None and booking.trip.driver_id == actor.id


async def get_booking(db: AsyncSession, booking_id: uuid.UUID, actor: User) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if not can_view(booking, actor):
        raise AuthorizationError("Not authorized to view this booking")
    return booking


async def find_booking_by_transaction(db: AsyncSession, transaction_id: str) -> Booking | None:
    """Match either the main or the extra-payment transaction id."""
    result = await db.execute(
        select(Booking).where(
            or_(
                Booking.transaction_id == transaction_id,
                Booking.extra_payment_transaction_id == transaction_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def get_booking_by_transaction(db: AsyncSession, transaction_id: str, actor: User) -> Booking:
    booking = await find_booking_by_transaction(db, transaction_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if not can_view(booking, actor):
        raise AuthorizationError("Not authorized to view this booking")
    return booking


async def list_guest_bookings(
    db: AsyncSession,
    guest_id: uuid.UUID,
    *,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Booking], int]:
    base_query = select(Booking).where(Booking.guest_id == guest_id)
    count_query = select(func.count()).select_from(Booking).where(Booking.guest_id == guest_id)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(base_query.order_by(Booking.created_at.desc()).offset(skip).limit(limit))
    return list(result.scalars().all()), total


async def list_host_bookings(
    db: AsyncSession,
    host_id: uuid.UUID,
    *,
    status: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Booking], int]:
    base_query = select(Booking).join(Listing, Booking.listing_id == Listing.id).where(Listing.host_id == host_id)
    count_query = (
        select(func.count())
        .select_from(Booking)
        .join(Listing, Booking.listing_id == Listing.id)
        .where(Listing.host_id == host_id)
    )
    if status is not None:
        base_query = base_query.where(Booking.status == status)
        count_query = count_query.where(Booking.status == status)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(base_query.order_by(Booking.created_at.desc()).offset(skip).limit(limit))
    return list(result.scalars().all()), total


@dataclass(frozen=True)
class CalendarRange:
    date_from: date
    date_to: date
    kind: str  # booking, blocked


async def listing_calendar(
    db: AsyncSession,
    listing_id: uuid.UUID,
    *,
    since: date | None = None,
) -> list[CalendarRange]:
    """Occupied ranges of a listing: non-cancelled bookings and blocked ranges."""
    if await db.get(Listing, listing_id) is None:
        raise NotFoundError("Listing not found")

    booking_query = select(Booking.date_from, Booking.date_to).where(
        Booking.listing_id == listing_id,
        Booking.status != "cancelled",
    )
    blocked_query = select(BlockedRange.date_from, BlockedRange.date_to).where(BlockedRange.listing_id == listing_id)
    if since is not None:
        booking_query = booking_query.where(Booking.date_to > since)
        blocked_query = blocked_query.where(BlockedRange.date_to > since)

    ranges = [CalendarRange(row.date_from, row.date_to, "booking") for row in await db.execute(booking_query)]
    ranges += [CalendarRange(row.date_from, row.date_to, "blocked") for row in await db.execute(blocked_query)]
    return sorted(ranges, key=lambda r: (r.date_from, r.date_to))
