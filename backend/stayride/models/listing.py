"""Listing model — bookable stays and their host-blocked date ranges."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Listing(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A property owned by a host. Read-only from the booking engine's side."""

    __tablename__ = "listings"

    host_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    location: Mapped[str | None] = mapped_column(String(255), default=None)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)  # per night
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    host: Mapped["User"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    blocked_ranges: Mapped[list["BlockedRange"]] = relationship(
        back_populates="listing", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title={self.title!r}, host_id={self.host_id})>"


class BlockedRange(UUIDPrimaryKeyMixin, Base):
    """Host-declared unavailable range. ``date_to`` is exclusive like bookings."""

    __tablename__ = "listing_blocked_ranges"

    listing_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), default=None)

    listing: Mapped[Listing] = relationship(back_populates="blocked_ranges")

    def __repr__(self) -> str:
        return f"<BlockedRange(listing_id={self.listing_id}, {self.date_from}..{self.date_to})>"
