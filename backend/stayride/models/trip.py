"""Trip model — ride offerings with per-seat fares and their passengers."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Trip(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A driver's ride with fixed seat capacity."""

    __tablename__ = "trips"

    driver_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    origin: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    departure_at: Mapped[datetime] = mapped_column(nullable=False)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    fare_per_seat: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="available", nullable=False)  # available, booked, cancelled
    payout_issued: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    driver: Mapped["User"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    passengers: Mapped[list["TripPassenger"]] = relationship(
        back_populates="trip", lazy="selectin", cascade="all, delete-orphan", order_by="TripPassenger.created_at"
    )

    @property
    def reserved_seats(self) -> int:
        return sum(p.seats for p in self.passengers if p.status != "cancelled")

    @property
    def seats_available(self) -> int:
        return self.total_seats - self.reserved_seats

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, {self.origin!r}->{self.destination!r}, seats={self.total_seats})>"


class TripPassenger(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A seat reservation on a trip, optionally tied to a combined booking."""

    __tablename__ = "trip_passengers"

    trip_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )
    seats: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="reserved", nullable=False)  # reserved, cancelled
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    trip: Mapped[Trip] = relationship(back_populates="passengers")

    def __repr__(self) -> str:
        return f"<TripPassenger(trip_id={self.trip_id}, user_id={self.user_id}, seats={self.seats}, status={self.status})>"
