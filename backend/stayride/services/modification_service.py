"""Date-change requests on confirmed, paid bookings.

``modification_status`` only ever moves ``none``/``accepted``/``rejected`` →
``requested`` → ``accepted`` | ``rejected``. Accepting re-prices the stay
and records the difference against what the guest already paid as an
extra payment (positive), a refund (negative) or nothing.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import AuthorizationError, ValidationError
from stayride.models.booking import Booking
from stayride.models.user import User
from stayride.services.availability import ensure_available, lock_listing
from stayride.services.booking_service import (
    booking_context,
    flush_booking,
    get_booking_for_update,
    is_guest,
    is_host,
)
from stayride.services.fees import ZERO, FeeSchedule, combined_order_total, stay_totals, to_money
from stayride.services.outbox import enqueue_notification

logger = logging.getLogger(__name__)

MODIFICATION_ACTIONS = ("accepted", "rejected")


def repriced_total(booking: Booking, nights: int, schedule: FeeSchedule) -> Decimal:
    """Order total for ``nights`` at the booking's nightly rate.

    A stay-only booking costs ``nights * price_per_night``; a combined order
    keeps its ride fare and discount and is priced like a new combined order.
    """
    stay = stay_totals(booking.price_per_night, nights).subtotal
    if not booking.combined or booking.trip is None:
        return stay
    trip_fare = to_money(booking.trip.fare_per_seat * booking.seats)
    return combined_order_total(stay, trip_fare, booking.discount, schedule).total


def apply_price_delta(booking: Booking, new_total: Decimal) -> None:
    """Set the extra-payment record from ``new_total`` versus ``paid_amount``."""
    paid = booking.paid_amount
    booking.price = new_total
    booking.refund_claimed = False
    if paid < new_total:
        # A new balance needs its own checkout.
        booking.extra_payment_transaction_id = None
        booking.extra_payment_required = True
        booking.extra_payment_amount = new_total - paid
        booking.extra_payment_status = "pending"
        booking.payment_status = "partial"
    elif paid > new_total:
        booking.extra_payment_required = False
        booking.extra_payment_amount = -(paid - new_total)
        booking.extra_payment_status = "refund_pending"
        booking.payment_status = "paid"
    else:
        booking.extra_payment_required = False
        booking.extra_payment_amount = ZERO
        booking.extra_payment_status = "not_required"
        booking.payment_status = "paid"


async def request_modification(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    new_from: date,
    new_to: date,
) -> Booking:
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Only the booking's guest can request a date change")
    if booking.status != "confirmed" or booking.payment_status not in ("paid", "partial") or booking.is_checked_in:
        raise ValidationError("Only paid, confirmed, and unchecked-in bookings can be modified")
    if booking.modification_status == "requested":
        raise ValidationError("A modification request is already awaiting the host")
    if booking.extra_payment_status == "pending" and booking.extra_payment_transaction_id:
        raise ValidationError("Finish the open extra payment before changing dates again")
    if booking.extra_payment_status == "refund_requested":
        raise ValidationError("A refund claim is being processed for this booking")
    if new_to <= new_from:
        raise ValidationError("Invalid modification date range")

    await ensure_available(db, booking.listing_id, new_from, new_to, exclude_booking_id=booking.id)

    booking.modification_status = "requested"
    booking.modification_from = new_from
    booking.modification_to = new_to
    booking.modification_requested_by = actor.id
    await flush_booking(db)

    await enqueue_notification(
        db,
        "modification_requested",
        booking_context(
            booking,
            requested_from=new_from,
            requested_to=new_to,
            link=f"/host/listings/{booking.listing_id}/bookings",
        ),
        user_id=booking.listing.host_id,
        booking_id=booking.id,
    )
    logger.info("Modification requested for booking %s: %s..%s", booking.id, new_from, new_to)
    return booking


async def respond_modification(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    action: str,
    schedule: FeeSchedule,
) -> Booking:
    """Host accepts or rejects the open request.

    Acceptance re-checks availability under the listing lock; on conflict
    ``ConflictError`` propagates and the request stays ``requested``.
    """
    if action not in MODIFICATION_ACTIONS:
        raise ValidationError("Invalid request")

    booking = await get_booking_for_update(db, booking_id)
    if not is_host(booking, actor):
        raise AuthorizationError("Only the listing's host can respond to this request")
    if booking.modification_status != "requested":
        raise ValidationError("There is no open modification request for this booking")

    balance_note = ""
    if action == "accepted":
        new_from, new_to = booking.modification_from, booking.modification_to
        await lock_listing(db, booking.listing_id)
        await ensure_available(db, booking.listing_id, new_from, new_to, exclude_booking_id=booking.id)

        nights = (new_to - new_from).days
        booking.date_from = new_from
        booking.date_to = new_to
        booking.nights = nights
        apply_price_delta(booking, repriced_total(booking, nights, schedule))

        if booking.extra_payment_status == "pending":
            balance_note = f"Payment due: {booking.extra_payment_amount}"
        elif booking.extra_payment_status == "refund_pending":
            balance_note = f"Refund due: {-booking.extra_payment_amount}"

    booking.modification_status = action
    await flush_booking(db)

    await enqueue_notification(
        db,
        "modification_responded",
        booking_context(booking, action=action, balance_note=balance_note),
        user_id=booking.guest_id,
        booking_id=booking.id,
    )
    logger.info(
        "Modification for booking %s %s by host %s (extra payment: %s %s)",
        booking.id,
        action,
        actor.id,
        booking.extra_payment_status,
        booking.extra_payment_amount,
    )
    return booking
