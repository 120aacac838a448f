"""Payment reconciliation — turns gateway events into exactly-once state changes.

Gateway callbacks are delivered at least once and in any order, so every
handler here is keyed by transaction id and guarded so that replaying it is
a no-op:

* ``handle_payment_success`` applies only while the main payment has not
  been recorded (``paid_at`` is unset); payouts are created at most once per
  booking and additionally backed by unique keys.
* ``handle_ipn`` is the backup channel and reuses the success transition,
  so it can never overwrite a payment the success callback already applied.
* ``handle_extra_payment_success`` applies only while the extra payment is
  still ``pending``.

Notifications and the referral reward are queued on the outbox in the same
transaction and delivered after commit; their failure cannot undo a payment.
"""

import logging
import secrets
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from stayride.models.booking import TERMINAL_BOOKING_STATUSES, Booking
from stayride.models.notification import GatewayCallbackLog
from stayride.models.payout import DriverPayout, Payout
from stayride.models.user import User
from stayride.payments.gateway import ChargeRequest
from stayride.services.booking_service import (
    booking_context,
    flush_booking,
    get_booking_for_update,
    is_guest,
)
from stayride.services.fees import FeeSchedule, ride_payout_split, stay_payout_split, to_money
from stayride.services.outbox import REFERRAL_TOPIC, enqueue, enqueue_notification
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)

Charger = Callable[[ChargeRequest], Awaitable[str]]


@dataclass(frozen=True)
class PaymentUrls:
    """Where the gateway sends the guest (and its IPN) after checkout."""

    success_url: str
    extra_success_url: str
    fail_url: str
    cancel_url: str
    ipn_url: str


@dataclass(frozen=True)
class PaymentSession:
    url: str
    transaction_id: str
    amount: Decimal


@dataclass(frozen=True)
class CallbackResult:
    """What a gateway callback did: ``applied``, ``duplicate``, ``ignored`` or ``needs_refund``."""

    outcome: str
    booking_id: uuid.UUID | None
    transaction_id: str


def _new_transaction_id(prefix: str, booking_id: uuid.UUID) -> str:
    return f"{prefix}_{booking_id.hex}_{secrets.token_hex(4)}"


async def _charge_unlocked(
    db: AsyncSession,
    booking_id: uuid.UUID,
    request: ChargeRequest,
    charger: Charger,
    restore: dict[str, object],
) -> str:
    """Commit the stamped transaction id, then call the gateway without the row lock.

    On ``UpstreamError`` the fields in ``restore`` are written back, unless
    another request has already replaced the transaction id.
    """
    await db.commit()
    try:
        return await charger(request)
    except UpstreamError:
        booking = await get_booking_for_update(db, booking_id)
        if request.transaction_id in (booking.transaction_id, booking.extra_payment_transaction_id):
            for field, value in restore.items():
                setattr(booking, field, value)
            await flush_booking(db)
            await db.commit()
        logger.warning("Gateway refused transaction %s for booking %s", request.transaction_id, booking_id)
        raise


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------


async def initiate_payment(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    charger: Charger,
    urls: PaymentUrls,
) -> PaymentSession:
    """Open a gateway checkout for the booking's full price.

    Calling it again replaces the pending transaction id, so at most one
    main transaction is ever outstanding for a booking. The new id is
    committed before the gateway is called; if the call fails the booking's
    previous transaction id and payment status are restored.
    """
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Only the booking's guest can pay for it")
    if booking.status not in ("pending", "confirmed"):
        raise ValidationError(f"Cannot pay for a booking that is {booking.status}")
    if booking.payment_status not in ("unpaid", "pending"):
        raise ValidationError("Booking is already paid")

    previous = booking.transaction_id
    restore = {"transaction_id": previous, "payment_status": booking.payment_status}
    booking.transaction_id = _new_transaction_id("BNB", booking.id)
    booking.payment_status = "pending"
    await flush_booking(db)

    guest = booking.guest
    request = ChargeRequest(
        transaction_id=booking.transaction_id,
        amount=booking.price,
        customer_name=guest.name,
        customer_email=guest.email,
        customer_phone=guest.phone,
        product_name="Stay booking" if not booking.combined else "Stay and ride booking",
        success_url=urls.success_url,
        fail_url=urls.fail_url,
        cancel_url=urls.cancel_url,
        ipn_url=urls.ipn_url,
    )
    url = await _charge_unlocked(db, booking.id, request, charger, restore)
    logger.info(
        "Payment initiated for booking %s: transaction=%s (replaces %s) amount=%s",
        booking_id,
        request.transaction_id,
        previous,
        request.amount,
    )
    return PaymentSession(url=url, transaction_id=request.transaction_id, amount=request.amount)


async def initiate_extra_payment(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    charger: Charger,
    urls: PaymentUrls,
) -> PaymentSession:
    """Charge the extra amount recorded when a modification raised the price.

    Refused while a date change awaits the host, since accepting it would
    re-price the balance this checkout is for.
    """
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Only the booking's guest can pay for it")
    if booking.extra_payment_status != "pending":
        raise ValidationError("No extra payment is due for this booking")
    if booking.modification_status == "requested":
        raise ValidationError("Wait for the host to answer the date change before paying")

    restore = {"extra_payment_transaction_id": booking.extra_payment_transaction_id}
    booking.extra_payment_transaction_id = _new_transaction_id("EXTRA", booking.id)
    await flush_booking(db)

    guest = booking.guest
    request = ChargeRequest(
        transaction_id=booking.extra_payment_transaction_id,
        amount=booking.extra_payment_amount,
        customer_name=guest.name,
        customer_email=guest.email,
        customer_phone=guest.phone,
        product_name="Extra booking payment",
        success_url=urls.extra_success_url,
        fail_url=urls.fail_url,
        cancel_url=urls.cancel_url,
    )
    url = await _charge_unlocked(db, booking.id, request, charger, restore)
    logger.info(
        "Extra payment initiated for booking %s: transaction=%s amount=%s",
        booking_id,
        request.transaction_id,
        request.amount,
    )
    return PaymentSession(url=url, transaction_id=request.transaction_id, amount=request.amount)


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


async def _lock_by_transaction(db: AsyncSession, transaction_id: str) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(
            or_(
                Booking.transaction_id == transaction_id,
                Booking.extra_payment_transaction_id == transaction_id,
            )
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


async def _record_payouts(db: AsyncSession, booking: Booking, schedule: FeeSchedule) -> dict:
    """Create the host payout (and driver payout for a ride) unless present."""
    if booking.combined:
        gross = to_money(booking.price_per_night * booking.nights)
    else:
        gross = booking.paid_amount
    split = stay_payout_split(gross, schedule)

    existing = await db.execute(select(Payout.id).where(Payout.booking_id == booking.id))
    if existing.scalar_one_or_none() is None:
        db.add(
            Payout(
                booking_id=booking.id,
                host_id=booking.listing.host_id,
                gross=split.gross,
                amount=split.host_payout,
                guest_fee=split.guest_fee,
                host_fee=split.host_fee,
                vat=split.vat,
                method="manual",
                status="pending",
                notes=f"Auto-created after payment of {booking.paid_amount}",
            )
        )
    else:
        logger.warning("Payout for booking %s already exists, not creating another", booking.id)

    context = {"host_fee": split.host_fee, "host_payout": split.host_payout}

    trip = booking.trip
    if trip is not None and booking.seats > 0:
        ride = ride_payout_split(trip.fare_per_seat, booking.seats, schedule)
        existing = await db.execute(
            select(DriverPayout.id).where(DriverPayout.trip_id == trip.id, DriverPayout.booking_id == booking.id)
        )
        if existing.scalar_one_or_none() is None:
            db.add(
                DriverPayout(
                    trip_id=trip.id,
                    booking_id=booking.id,
                    driver_id=trip.driver_id,
                    subtotal=ride.subtotal,
                    amount=ride.driver_payout,
                    service_fee=ride.service_fee,
                    vat=ride.vat,
                    method="manual",
                    status="pending",
                )
            )
        context["driver_payout"] = ride.driver_payout

    await db.flush()
    return context


async def handle_payment_success(
    db: AsyncSession,
    transaction_id: str,
    schedule: FeeSchedule,
    *,
    validation_id: str | None = None,
    amount: Decimal | None = None,
    now: datetime | None = None,
) -> CallbackResult:
    """Record a successful main payment and emit its payouts exactly once.

    ``amount`` defaults to the booking price when the callback does not
    carry one. A transaction id that belongs to an extra payment is routed
    to ``handle_extra_payment_success``.

    Raises:
        NotFoundError: If no booking carries ``transaction_id``.
    """
    current = now or utcnow()
    booking = await _lock_by_transaction(db, transaction_id)

    if booking.transaction_id != transaction_id:
        return await handle_extra_payment_success(db, transaction_id, amount=amount, booking=booking)

    paid = to_money(amount) if amount is not None else booking.price
    if booking.paid_at is not None:
        if booking.paid_amount != paid and booking.payment_status == "paid":
            logger.warning(
                "Booking %s already paid %s; ignoring callback %s reporting %s",
                booking.id,
                booking.paid_amount,
                transaction_id,
                paid,
            )
        else:
            logger.info("Duplicate payment callback %s for booking %s", transaction_id, booking.id)
        return CallbackResult("duplicate", booking.id, transaction_id)

    booking.payment_status = "paid"
    booking.paid_amount = paid
    booking.paid_at = current
    if validation_id:
        booking.validation_id = validation_id

    if booking.status in TERMINAL_BOOKING_STATUSES:
        # Dates and seats may already be re-let; hold the money for a manual refund.
        await flush_booking(db)
        logger.warning(
            "Payment %s of %s received for %s booking %s; manual refund required",
            transaction_id,
            paid,
            booking.status,
            booking.id,
        )
        return CallbackResult("needs_refund", booking.id, transaction_id)

    booking.status = "confirmed"
    await flush_booking(db)

    payout_context = await _record_payouts(db, booking, schedule)
    data = booking_context(booking, paid_amount=paid, transaction_id=transaction_id, **payout_context)

    await enqueue_notification(db, "payment_received", data, user_id=booking.guest_id, booking_id=booking.id)
    await enqueue_notification(db, "new_paid_booking", data, user_id=booking.listing.host_id, booking_id=booking.id)
    if booking.trip is not None and booking.seats > 0:
        trip = booking.trip
        await enqueue_notification(
            db,
            "new_passenger",
            dict(data, seats=booking.seats, origin=trip.origin, destination=trip.destination),
            user_id=trip.driver_id,
            booking_id=booking.id,
        )

    guest = booking.guest
    if guest.referred_by and not guest.referral_rewarded:
        await enqueue(db, REFERRAL_TOPIC, {"guest_id": guest.id}, booking_id=booking.id)

    logger.info(
        "Payment %s applied to booking %s: paid=%s validation=%s",
        transaction_id,
        booking.id,
        paid,
        validation_id,
    )
    return CallbackResult("applied", booking.id, transaction_id)


async def handle_ipn(
    db: AsyncSession,
    transaction_id: str,
    status: str,
    schedule: FeeSchedule,
    *,
    validation_id: str | None = None,
    amount: Decimal | None = None,
    now: datetime | None = None,
) -> CallbackResult:
    """Backup confirmation channel; only ``VALID`` notifications change state."""
    if status != "VALID":
        logger.info("IPN %s with status %s acknowledged without changes", transaction_id, status)
        return CallbackResult("ignored", None, transaction_id)
    return await handle_payment_success(
        db,
        transaction_id,
        schedule,
        validation_id=validation_id,
        amount=amount,
        now=now,
    )


async def handle_extra_payment_success(
    db: AsyncSession,
    transaction_id: str,
    *,
    amount: Decimal | None = None,
    booking: Booking | None = None,
) -> CallbackResult:
    """Add a completed extra payment to the booking's paid amount once."""
    if booking is None:
        booking = await _lock_by_transaction(db, transaction_id)
    if booking.extra_payment_transaction_id != transaction_id:
        raise NotFoundError("Booking not found")

    if booking.extra_payment_status == "paid":
        logger.info("Duplicate extra payment callback %s for booking %s", transaction_id, booking.id)
        return CallbackResult("duplicate", booking.id, transaction_id)
    if booking.extra_payment_status != "pending":
        logger.warning(
            "Extra payment callback %s for booking %s in state %s ignored",
            transaction_id,
            booking.id,
            booking.extra_payment_status,
        )
        return CallbackResult("ignored", booking.id, transaction_id)

    paid = to_money(amount) if amount is not None else booking.extra_payment_amount
    booking.paid_amount = booking.paid_amount + paid
    booking.extra_payment_status = "paid"
    booking.extra_payment_required = False
    booking.payment_status = "paid" if booking.paid_amount >= booking.price else "partial"
    await flush_booking(db)

    await enqueue_notification(
        db,
        "extra_payment_received",
        booking_context(booking, amount=paid, transaction_id=transaction_id),
        user_id=booking.guest_id,
        booking_id=booking.id,
    )
    logger.info(
        "Extra payment %s applied to booking %s: +%s (paid %s of %s)",
        transaction_id,
        booking.id,
        paid,
        booking.paid_amount,
        booking.price,
    )
    return CallbackResult("applied", booking.id, transaction_id)


async def record_callback(
    db: AsyncSession,
    kind: str,
    transaction_id: str | None,
    payload: dict,
    outcome: str,
) -> GatewayCallbackLog:
    """Persist the raw callback for audit and manual reconciliation."""
    entry = GatewayCallbackLog(kind=kind, transaction_id=transaction_id, payload=payload, outcome=outcome)
    db.add(entry)
    await db.flush()
    return entry


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


async def claim_refund(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: User,
    *,
    operator_email: str,
) -> Booking:
    """Guest asks for the refund a shortened stay left them owed.

    The transfer itself is made by an operator; this only records the claim.
    """
    booking = await get_booking_for_update(db, booking_id)
    if not is_guest(booking, actor):
        raise AuthorizationError("Not authorized")
    if booking.extra_payment_status != "refund_pending" or booking.refund_claimed:
        raise ValidationError("No refund is available to claim for this booking")
    if booking.modification_status == "requested":
        raise ValidationError("Wait for the host to answer the date change before claiming a refund")

    booking.extra_payment_status = "refund_requested"
    booking.refund_claimed = True
    await flush_booking(db)

    await enqueue_notification(
        db,
        "refund_claimed",
        booking_context(booking, amount=-booking.extra_payment_amount),
        email=operator_email,
        booking_id=booking.id,
    )
    logger.info("Refund of %s claimed for booking %s", -booking.extra_payment_amount, booking.id)
    return booking
