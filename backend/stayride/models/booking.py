"""Booking model — a guest's reservation of a listing plus its payment state.

The record carries two independent state axes:

* ``status`` (lifecycle): ``pending``, ``confirmed``, ``cancelled``, ``expired``
* ``payment_status``: ``unpaid``, ``pending``, ``partial``, ``paid``

The extra-payment and modification sub-records are stored as flat columns
and exposed through the ``extra_payment`` / ``modification_request``
read-only views.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

BOOKING_STATUSES = {"pending", "confirmed", "cancelled", "expired"}
TERMINAL_BOOKING_STATUSES = {"cancelled", "expired"}
PAYMENT_STATUSES = {"unpaid", "pending", "partial", "paid"}
EXTRA_PAYMENT_STATUSES = {"pending", "paid", "refund_pending", "refund_requested", "not_required"}
MODIFICATION_STATUSES = {"none", "requested", "accepted", "rejected"}


@dataclass(frozen=True)
class ExtraPayment:
    """Money still owed by (positive) or to (negative) the guest after a date change."""

    required: bool
    amount: Decimal
    status: str
    transaction_id: str | None
    refund_claimed: bool


@dataclass(frozen=True)
class ModificationRequest:
    status: str
    requested_from: date | None
    requested_to: date | None
    requested_by: uuid.UUID | None


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation linking a guest to a listing for a half-open date range."""

    __tablename__ = "bookings"

    guest_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    listing_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trip_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("trips.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Dates: date_from inclusive (check-in day), date_to exclusive (checkout day)
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    seats: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    combined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    promo_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default="unpaid", nullable=False, index=True)

    # Money
    price_per_night: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    validation_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Extra payment / refund after a modification
    extra_payment_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    extra_payment_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    extra_payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    extra_payment_transaction_id: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    refund_claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Modification request
    modification_status: Mapped[str] = mapped_column(String(20), default="none", nullable=False)
    modification_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    modification_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    modification_requested_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    # Stay lifecycle
    check_in_at: Mapped[datetime | None] = mapped_column(nullable=True)
    check_out_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payout_issued: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    guest: Mapped["User"] = relationship(foreign_keys=[guest_id], lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    listing: Mapped["Listing"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    trip: Mapped["Trip | None"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (Index("ix_bookings_listing_dates", "listing_id", "date_from", "date_to"),)
    __mapper_args__ = {"version_id_col": version}

    @property
    def extra_payment(self) -> ExtraPayment | None:
        if self.extra_payment_status is None:
            return None
        return ExtraPayment(
            required=self.extra_payment_required,
            amount=self.extra_payment_amount,
            status=self.extra_payment_status,
            transaction_id=self.extra_payment_transaction_id,
            refund_claimed=self.refund_claimed,
        )

    @property
    def modification_request(self) -> ModificationRequest:
        return ModificationRequest(
            status=self.modification_status,
            requested_from=self.modification_from,
            requested_to=self.modification_to,
            requested_by=self.modification_requested_by,
        )

    @property
    def is_checked_in(self) -> bool:
        return self.check_in_at is not None

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, listing_id={self.listing_id}, guest_id={self.guest_id}, "
            f"status={self.status}, payment_status={self.payment_status})>"
        )
