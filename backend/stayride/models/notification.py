"""Notification, outbox and gateway audit models."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Notification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """In-app notification shown to a user."""

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class OutboxEvent(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Side effect recorded in the same transaction as the state change.

    Delivered after commit by ``stayride.services.outbox``; a failing
    delivery never rolls back the state change that produced it.
    """

    __tablename__ = "outbox_events"

    topic: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)  # pending, sent, failed
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<OutboxEvent(id={self.id}, topic={self.topic!r}, status={self.status}, attempts={self.attempts})>"


class GatewayCallbackLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Raw audit trail of every payment gateway callback."""

    __tablename__ = "gateway_callback_logs"

    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # success, ipn, extra_success
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    outcome: Mapped[str | None] = mapped_column(String(50), nullable=True)
