"""Payout ledger — append-only amounts owed to hosts and drivers.

Rows are created once per paid order by the payment service and afterwards
only ever change ``status`` / ``paid_at`` through payout operations.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Payout(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Host payout for a paid stay."""

    __tablename__ = "payouts"

    # One payout per booking; the unique key backs the exactly-once guarantee
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    host_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gross: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    guest_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    host_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    vat: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(50), default="manual", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)  # pending, paid
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, status={self.status})>"


class DriverPayout(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Driver payout for the ride part of a paid combined order."""

    __tablename__ = "driver_payouts"

    trip_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
    )
    driver_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    vat: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(50), default="manual", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (UniqueConstraint("trip_id", "booking_id", name="uq_driver_payouts_trip_booking"),)

    def __repr__(self) -> str:
        return f"<DriverPayout(id={self.id}, trip_id={self.trip_id}, amount={self.amount}, status={self.status})>"
