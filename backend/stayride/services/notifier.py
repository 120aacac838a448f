"""Notification delivery — templated in-app notifications plus email hand-off.

The booking engine never sends mail itself. ``Notifier`` renders a named
template, stores an in-app ``Notification`` for the recipient and passes
the rendered message to an optional ``email_sender`` (the mail service
integration); without one it only logs what would be sent.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from stayride.models.notification import Notification, OutboxEvent
from stayride.models.user import User

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, str], Awaitable[None]]

TEMPLATES: dict[str, dict[str, str]] = {
    "booking_accepted": {
        "subject": "Your booking has been accepted!",
        "body": (
            "Hi {guest_name},\n\n"
            "Your booking for {listing_title} ({date_from} to {date_to}) has been accepted by the host.\n"
            "We look forward to hosting you!"
        ),
    },
    "booking_cancelled": {
        "subject": "Booking Cancelled",
        "body": (
            "Hello,\n\n"
            "The booking for {listing_title} ({date_from} to {date_to}) has been cancelled by {cancelled_by}.\n"
            "If this was a mistake, please reach out to the other party directly."
        ),
    },
    "booking_expired": {
        "subject": "Booking Request Expired",
        "body": (
            "Hello,\n\n"
            "The booking request for {listing_title} ({date_from} to {date_to}) expired because it was "
            "not completed within {ttl_days} days."
        ),
    },
    "checked_in": {
        "subject": "Guest checked in",
        "body": "{guest_name} has checked into {listing_title}. Enjoy the stay!",
    },
    "checked_out": {
        "subject": "Booking completed: guest checked out",
        "body": (
            "{guest_name} has checked out from {listing_title} after {nights} night(s).\n"
            "Your payout of {host_payout} is queued for processing."
        ),
    },
    "leave_review": {
        "subject": "Leave a review for your stay",
        "body": "Thanks for staying at {listing_title}! Share your feedback: {review_link}",
    },
    "payment_received": {
        "subject": "Your invoice is ready!",
        "body": (
            "Dear {guest_name},\n\n"
            "Your payment of {paid_amount} for {listing_title} ({date_from} to {date_to}) was received.\n"
            "Transaction: {transaction_id}"
        ),
    },
    "new_paid_booking": {
        "subject": "New paid booking on your listing!",
        "body": (
            "A guest has paid and confirmed a booking on {listing_title} ({date_from} to {date_to}).\n"
            "Guest paid: {paid_amount}\nPlatform fee: {host_fee}\nPayout to you: {host_payout}"
        ),
    },
    "new_passenger": {
        "subject": "A new passenger has booked your trip",
        "body": (
            "{guest_name} reserved {seats} seat(s) on your trip from {origin} to {destination}.\n"
            "Payout to you: {driver_payout}"
        ),
    },
    "seat_reserved": {
        "subject": "Trip reserved",
        "body": (
            "Your {seats} seat(s) from {origin} to {destination} on {departure_at} are reserved.\n"
            "Total: {total}. Please complete the payment to confirm your reservation."
        ),
    },
    "extra_payment_received": {
        "subject": "Extra payment received",
        "body": "Thank you for paying {amount}. Your updated booking for {listing_title} is now fully confirmed.",
    },
    "modification_requested": {
        "subject": "Modification request for booking {booking_id}",
        "body": (
            "{guest_name} requested to change the dates for {listing_title}.\n"
            "Current dates: {date_from} to {date_to}\n"
            "Requested dates: {requested_from} to {requested_to}"
        ),
    },
    "modification_responded": {
        "subject": "Booking modification {action}",
        "body": (
            "Your date change for {listing_title} was {action}.\n"
            "Dates: {date_from} to {date_to}\nTotal: {price}\n{balance_note}"
        ),
    },
    "refund_claimed": {
        "subject": "Refund request from guest",
        "body": (
            "Guest {guest_name} has claimed a refund for booking {booking_id}.\n"
            "Amount: {amount}\nPlease review and process the refund manually."
        ),
    },
    "referral_reward": {
        "subject": "Referral bonus earned!",
        "body": (
            "Someone used your referral code and completed their first booking.\n"
            "Your reward code {promo_code} is worth {discount} and is valid until {expires_at}."
        ),
    },
}


class _Missing(dict):
    """Leave unknown placeholders visible instead of raising ``KeyError``."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(template: str, data: dict[str, Any]) -> tuple[str, str]:
    """Render a template to ``(subject, body)``."""
    try:
        spec = TEMPLATES[template]
    except KeyError:
        raise LookupError(f"Unknown notification template {template!r}") from None
    values = _Missing(data)
    return spec["subject"].format_map(values), spec["body"].format_map(values)


class Notifier:
    """Delivers ``notify`` outbox events."""

    def __init__(self, email_sender: EmailSender | None = None) -> None:
        self._email_sender = email_sender

    async def notify(
        self,
        db: AsyncSession,
        template: str,
        data: dict[str, Any],
        *,
        user_id: uuid.UUID | None = None,
        email: str | None = None,
        booking_id: uuid.UUID | None = None,
    ) -> Notification | None:
        subject, body = render(template, data)

        notification = None
        if user_id is not None:
            user = await db.get(User, user_id)
            if user is None:
                logger.warning("Notification %s skipped: user %s not found", template, user_id)
                return None
            email = email or user.email
            notification = Notification(
                user_id=user.id,
                type=template,
                subject=subject,
                message=body,
                link=data.get("link"),
                booking_id=booking_id,
            )
            db.add(notification)
            await db.flush()

        if email:
            if self._email_sender is not None:
                await self._email_sender(email, subject, body)
            else:
                logger.info("Email to %s: %s", email, subject)
        return notification

    async def handle_event(self, db: AsyncSession, event: OutboxEvent) -> None:
        """Outbox handler for the ``notify`` topic."""
        payload = event.payload
        user_id = payload.get("user_id")
        await self.notify(
            db,
            payload["template"],
            payload.get("data") or {},
            user_id=uuid.UUID(user_id) if user_id else None,
            email=payload.get("email"),
            booking_id=event.booking_id,
        )
