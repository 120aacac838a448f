"""initial_booking_engine_schema

Revision ID: 3f9c2a7d1b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("referral_code", sa.String(50), nullable=True, unique=True),
        sa.Column("referred_by", sa.String(50), nullable=True),
        sa.Column("referral_rewards", sa.Integer(), nullable=False),
        sa.Column("referral_rewarded", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "listings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("host_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("max_guests", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_listings_host_id", "listings", ["host_id"])

    op.create_table(
        "listing_blocked_ranges",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("listing_id", sa.UUID(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
    )
    op.create_index("ix_listing_blocked_ranges_listing_id", "listing_blocked_ranges", ["listing_id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("driver_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("departure_at", sa.DateTime(), nullable=False),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("fare_per_seat", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payout_issued", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_trips_driver_id", "trips", ["driver_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("guest_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("listing_id", sa.UUID(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("trip_id", sa.UUID(), sa.ForeignKey("trips.id", ondelete="SET NULL"), nullable=True),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("guests", sa.Integer(), nullable=False),
        sa.Column("seats", sa.Integer(), nullable=False),
        sa.Column("combined", sa.Boolean(), nullable=False),
        sa.Column("promo_code", sa.String(50), nullable=True),
        sa.Column("discount", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False),
        sa.Column("price_per_night", MONEY, nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False),
        sa.Column("transaction_id", sa.String(120), nullable=True, unique=True),
        sa.Column("validation_id", sa.String(120), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("extra_payment_required", sa.Boolean(), nullable=False),
        sa.Column("extra_payment_amount", MONEY, nullable=False),
        sa.Column("extra_payment_status", sa.String(20), nullable=True),
        sa.Column("extra_payment_transaction_id", sa.String(120), nullable=True, unique=True),
        sa.Column("refund_claimed", sa.Boolean(), nullable=False),
        sa.Column("modification_status", sa.String(20), nullable=False),
        sa.Column("modification_from", sa.Date(), nullable=True),
        sa.Column("modification_to", sa.Date(), nullable=True),
        sa.Column("modification_requested_by", sa.UUID(), nullable=True),
        sa.Column("check_in_at", sa.DateTime(), nullable=True),
        sa.Column("check_out_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_id", sa.UUID(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.Column("payout_issued", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_bookings_guest_id", "bookings", ["guest_id"])
    op.create_index("ix_bookings_listing_id", "bookings", ["listing_id"])
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"])
    op.create_index("ix_bookings_listing_dates", "bookings", ["listing_id", "date_from", "date_to"])

    op.create_table(
        "trip_passengers",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("trip_id", sa.UUID(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True),
        sa.Column("seats", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_trip_passengers_trip_id", "trip_passengers", ["trip_id"])
    op.create_index("ix_trip_passengers_user_id", "trip_passengers", ["user_id"])

    op.create_table(
        "payouts",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column(
            "booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("host_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("gross", MONEY, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("guest_fee", MONEY, nullable=False),
        sa.Column("host_fee", MONEY, nullable=False),
        sa.Column("vat", MONEY, nullable=False),
        sa.Column("method", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payouts_host_id", "payouts", ["host_id"])
    op.create_index("ix_payouts_status", "payouts", ["status"])

    op.create_table(
        "driver_payouts",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("trip_id", sa.UUID(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("driver_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("service_fee", MONEY, nullable=False),
        sa.Column("vat", MONEY, nullable=False),
        sa.Column("method", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("trip_id", "booking_id", name="uq_driver_payouts_trip_booking"),
    )
    op.create_index("ix_driver_payouts_trip_id", "driver_payouts", ["trip_id"])
    op.create_index("ix_driver_payouts_driver_id", "driver_payouts", ["driver_id"])
    op.create_index("ix_driver_payouts_status", "driver_payouts", ["status"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("discount", MONEY, nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("issued_to_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_promo_codes_issued_to_id", "promo_codes", ["issued_to_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(512), nullable=True),
        sa.Column("booking_id", sa.UUID(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("topic", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("booking_id", sa.UUID(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_outbox_events_topic", "outbox_events", ["topic"])
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"])
    op.create_index("ix_outbox_events_booking_id", "outbox_events", ["booking_id"])

    op.create_table(
        "gateway_callback_logs",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("transaction_id", sa.String(120), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("outcome", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_gateway_callback_logs_transaction_id", "gateway_callback_logs", ["transaction_id"])


def downgrade() -> None:
    for table in (
        "gateway_callback_logs",
        "outbox_events",
        "notifications",
        "promo_codes",
        "driver_payouts",
        "payouts",
        "trip_passengers",
        "bookings",
        "trips",
        "listing_blocked_ranges",
        "listings",
        "users",
    ):
        op.drop_table(table)
