"""Tests for booking creation and lifecycle transitions."""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from stayride.models.listing import Listing
from stayride.models.notification import OutboxEvent
from stayride.models.promo_code import PromoCode
from stayride.models.trip import Trip, TripPassenger
from stayride.models.user import User
from stayride.services import booking_service
from stayride.services.availability import lock_trip
from stayride.services.fees import FeeSchedule
from stayride.timeutils import utcnow

NOW = datetime(2031, 5, 1, 12, 0)
JUNE_1 = date(2031, 6, 1)


async def _notifications(db: AsyncSession, template: str) -> list[dict]:
    result = await db.execute(select(OutboxEvent).where(OutboxEvent.topic == "notify"))
    return [e.payload for e in result.scalars().all() if e.payload["template"] == template]


async def _create(db: AsyncSession, guest: User, listing: Listing, start: date = JUNE_1, nights: int = 3):
    booking = await booking_service.create_booking(
        db, guest, listing.id, start, start + timedelta(days=nights), 2, now=NOW
    )
    await db.commit()
    return booking


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


class TestCreateBooking:
    async def test_creates_pending_unpaid(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)

        assert booking.status == "pending"
        assert booking.payment_status == "unpaid"
        assert booking.nights == 3
        assert booking.price_per_night == Decimal("2300.00")
        assert booking.price == Decimal("6900.00")
        assert booking.paid_amount == Decimal("0")
        assert booking.extra_payment is None
        assert booking.modification_request.status == "none"

    async def test_overlapping_request_conflicts(
        self, db_session: AsyncSession, guest: User, other_guest: User, listing: Listing
    ) -> None:
        await _create(db_session, guest, listing, JUNE_1, 3)

        with pytest.raises(ConflictError) as exc_info:
            await booking_service.create_booking(
                db_session, other_guest, listing.id, date(2031, 6, 3), date(2031, 6, 5), 1, now=NOW
            )
        assert "already booked" in exc_info.value.message

    async def test_back_to_back_stays_allowed(
        self, db_session: AsyncSession, guest: User, other_guest: User, listing: Listing
    ) -> None:
        await _create(db_session, guest, listing, JUNE_1, 3)
        second = await _create(db_session, other_guest, listing, date(2031, 6, 4), 2)

        assert second.status == "pending"

    async def test_past_dates_rejected(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        with pytest.raises(ValidationError, match="Cannot book in the past"):
            await booking_service.create_booking(
                db_session, guest, listing.id, date(2031, 4, 1), date(2031, 4, 3), 1, now=NOW
            )

    async def test_inverted_dates_rejected(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        with pytest.raises(ValidationError):
            await booking_service.create_booking(db_session, guest, listing.id, JUNE_1, JUNE_1, 1, now=NOW)

    async def test_too_many_guests(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        with pytest.raises(ValidationError, match="Too many guests"):
            await booking_service.create_booking(
                db_session, guest, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 5, now=NOW
            )

    async def test_host_cannot_book_own_listing(self, db_session: AsyncSession, host: User, listing: Listing) -> None:
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                db_session, host, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 1, now=NOW
            )

    async def test_unknown_listing(self, db_session: AsyncSession, guest: User) -> None:
        with pytest.raises(NotFoundError):
            await booking_service.create_booking(
                db_session, guest, uuid.uuid4(), JUNE_1, JUNE_1 + timedelta(days=2), 1, now=NOW
            )


# ---------------------------------------------------------------------------
# create_combined_booking
# ---------------------------------------------------------------------------


class TestCreateCombinedBooking:
    async def test_books_stay_and_seats(
        self, db_session: AsyncSession, guest: User, listing: Listing, trip: Trip, schedule: FeeSchedule
    ) -> None:
        result = await booking_service.create_combined_booking(
            db_session, guest, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 2, schedule, trip_id=trip.id, now=NOW
        )
        await db_session.commit()

        booking = result.booking
        assert booking.combined is True
        assert booking.seats == 2
        assert result.breakdown.stay_subtotal == Decimal("4600.00")
        assert result.breakdown.trip_fare == Decimal("1600.00")
        assert result.breakdown.service_fee == Decimal("620.00")
        assert booking.price == Decimal("6820.00")

        locked = await lock_trip(db_session, trip.id)
        assert locked.seats_available == 2
        assert [p.booking_id for p in locked.passengers] == [booking.id]

    async def test_not_enough_seats(
        self,
        db_session: AsyncSession,
        guest: User,
        other_guest: User,
        listing: Listing,
        trip: Trip,
        schedule: FeeSchedule,
    ) -> None:
        locked = await lock_trip(db_session, trip.id)
        locked.passengers.append(TripPassenger(user_id=other_guest.id, seats=3))
        await db_session.commit()

        with pytest.raises(ConflictError, match="Not enough seats available"):
            await booking_service.create_combined_booking(
                db_session,
                guest,
                listing.id,
                JUNE_1,
                JUNE_1 + timedelta(days=2),
                2,
                schedule,
                trip_id=trip.id,
                now=NOW,
            )

    async def test_full_trip_is_marked_booked(
        self, db_session: AsyncSession, guest: User, listing: Listing, trip: Trip, schedule: FeeSchedule
    ) -> None:
        await booking_service.create_combined_booking(
            db_session, guest, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 4, schedule, trip_id=trip.id, now=NOW
        )
        await db_session.commit()

        locked = await lock_trip(db_session, trip.id)
        assert locked.status == "booked"

    async def test_promo_code_discount(
        self, db_session: AsyncSession, guest: User, listing: Listing, schedule: FeeSchedule
    ) -> None:
        promo = PromoCode(
            code="REFTEST01",
            discount=Decimal("150"),
            discount_type="flat",
            issued_to_id=guest.id,
            expires_at=NOW + timedelta(days=30),
            usage_limit=1,
        )
        db_session.add(promo)
        await db_session.commit()

        result = await booking_service.create_combined_booking(
            db_session,
            guest,
            listing.id,
            JUNE_1,
            JUNE_1 + timedelta(days=2),
            1,
            schedule,
            promo_code="REFTEST01",
            now=NOW,
        )
        await db_session.commit()

        assert result.breakdown.discount == Decimal("150.00")
        assert result.booking.price == Decimal("4910.00")
        assert result.booking.discount == Decimal("150.00")
        assert promo.used_count == 1

        with pytest.raises(ValidationError, match="already been used"):
            await booking_service.create_combined_booking(
                db_session,
                guest,
                listing.id,
                date(2031, 7, 1),
                date(2031, 7, 3),
                1,
                schedule,
                promo_code="REFTEST01",
                now=NOW,
            )

    async def test_unknown_promo_code(
        self, db_session: AsyncSession, guest: User, listing: Listing, schedule: FeeSchedule
    ) -> None:
        with pytest.raises(ValidationError, match="Invalid promo code"):
            await booking_service.create_combined_booking(
                db_session,
                guest,
                listing.id,
                JUNE_1,
                JUNE_1 + timedelta(days=2),
                1,
                schedule,
                promo_code="NOPE",
                now=NOW,
            )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestAcceptBooking:
    async def test_host_accepts(self, db_session: AsyncSession, guest: User, host: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)

        accepted = await booking_service.accept_booking(db_session, booking.id, host)
        await db_session.commit()

        assert accepted.status == "confirmed"
        assert accepted.payment_status == "unpaid"
        sent = await _notifications(db_session, "booking_accepted")
        assert [n["user_id"] for n in sent] == [str(guest.id)]

    async def test_guest_cannot_accept(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)

        with pytest.raises(AuthorizationError):
            await booking_service.accept_booking(db_session, booking.id, guest)

    async def test_only_pending_can_be_accepted(
        self, db_session: AsyncSession, guest: User, host: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)
        await booking_service.accept_booking(db_session, booking.id, host)
        await db_session.commit()

        with pytest.raises(ValidationError):
            await booking_service.accept_booking(db_session, booking.id, host)


class TestCancelBooking:
    async def test_guest_cancels_and_host_is_told(
        self, db_session: AsyncSession, guest: User, host: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)

        cancelled = await booking_service.cancel_booking(db_session, booking.id, guest, now=NOW)
        await db_session.commit()

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == NOW
        assert cancelled.cancelled_by_id == guest.id
        sent = await _notifications(db_session, "booking_cancelled")
        assert [n["user_id"] for n in sent] == [str(host.id)]

    async def test_stranger_cannot_cancel(
        self, db_session: AsyncSession, guest: User, other_guest: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)

        with pytest.raises(AuthorizationError):
            await booking_service.cancel_booking(db_session, booking.id, other_guest, now=NOW)

    async def test_terminal_booking_cannot_be_cancelled(
        self, db_session: AsyncSession, guest: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)
        await booking_service.cancel_booking(db_session, booking.id, guest, now=NOW)
        await db_session.commit()

        with pytest.raises(ValidationError):
            await booking_service.cancel_booking(db_session, booking.id, guest, now=NOW)

    async def test_cancelled_dates_can_be_rebooked(
        self, db_session: AsyncSession, guest: User, other_guest: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)
        await booking_service.cancel_booking(db_session, booking.id, guest, now=NOW)
        await db_session.commit()

        again = await _create(db_session, other_guest, listing)
        assert again.status == "pending"

    async def test_combined_cancel_releases_seats(
        self, db_session: AsyncSession, guest: User, listing: Listing, trip: Trip, schedule: FeeSchedule
    ) -> None:
        result = await booking_service.create_combined_booking(
            db_session, guest, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 4, schedule, trip_id=trip.id, now=NOW
        )
        await db_session.commit()

        await booking_service.cancel_booking(db_session, result.booking.id, guest, now=NOW)
        await db_session.commit()

        locked = await lock_trip(db_session, trip.id)
        assert locked.seats_available == 4
        assert locked.status == "available"
        assert locked.passengers[0].status == "cancelled"


class TestCheckInOut:
    async def test_too_early_to_check_in(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)

        with pytest.raises(ValidationError, match="Too early to check in"):
            await booking_service.check_in(db_session, booking.id, guest, now=NOW)

    async def test_check_in_then_out(
        self, db_session: AsyncSession, guest: User, host: User, listing: Listing, schedule: FeeSchedule
    ) -> None:
        booking = await _create(db_session, guest, listing)
        arrival = datetime(2031, 6, 1, 15, 0)
        departure = datetime(2031, 6, 4, 10, 0)

        await booking_service.check_in(db_session, booking.id, guest, now=arrival)
        await db_session.commit()
        with pytest.raises(ValidationError, match="Already checked in"):
            await booking_service.check_in(db_session, booking.id, guest, now=arrival)

        with pytest.raises(ValidationError, match="Too early to check out"):
            await booking_service.check_out(db_session, booking.id, guest, schedule, now=arrival)

        done = await booking_service.check_out(
            db_session, booking.id, guest, schedule, review_url="https://app.test/reviews", now=departure
        )
        await db_session.commit()

        assert done.check_in_at == arrival
        assert done.check_out_at == departure
        checked_out = await _notifications(db_session, "checked_out")
        assert checked_out[0]["user_id"] == str(host.id)
        # 6900 gross: guest fee 600, host fee 315
        assert checked_out[0]["data"]["host_payout"] == "6585.00"
        review = await _notifications(db_session, "leave_review")
        assert review[0]["data"]["review_link"] == f"https://app.test/reviews?booking={booking.id}"

    async def test_check_out_requires_check_in(
        self, db_session: AsyncSession, guest: User, listing: Listing, schedule: FeeSchedule
    ) -> None:
        booking = await _create(db_session, guest, listing)

        with pytest.raises(ValidationError, match="before checking in"):
            await booking_service.check_out(db_session, booking.id, guest, schedule, now=datetime(2031, 6, 5))

    async def test_host_cannot_check_in(self, db_session: AsyncSession, guest: User, host: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)

        with pytest.raises(AuthorizationError):
            await booking_service.check_in(db_session, booking.id, host, now=datetime(2031, 6, 1, 15))


class TestExpireStaleBookings:
    async def test_expires_old_unpaid_bookings_once(
        self, db_session: AsyncSession, guest: User, host: User, listing: Listing
    ) -> None:
        booking = await _create(db_session, guest, listing)
        later = utcnow() + timedelta(days=4)

        expired = await booking_service.expire_stale_bookings(db_session, ttl_days=3, now=later)
        await db_session.commit()

        assert [b.id for b in expired] == [booking.id]
        assert booking.status == "expired"
        assert booking.expired_at == later
        sent = await _notifications(db_session, "booking_expired")
        assert sorted(n["user_id"] for n in sent) == sorted([str(guest.id), str(host.id)])

        # Re-running is a no-op
        again = await booking_service.expire_stale_bookings(db_session, ttl_days=3, now=later)
        assert again == []
        assert len(await _notifications(db_session, "booking_expired")) == 2

    async def test_recent_bookings_are_kept(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        await _create(db_session, guest, listing)

        expired = await booking_service.expire_stale_bookings(
            db_session, ttl_days=3, now=utcnow() + timedelta(days=1)
        )
        assert expired == []

    async def test_confirmed_and_paid_bookings_are_kept(
        self, db_session: AsyncSession, guest: User, host: User, listing: Listing
    ) -> None:
        confirmed = await _create(db_session, guest, listing, JUNE_1, 2)
        await booking_service.accept_booking(db_session, confirmed.id, host)
        paid = await _create(db_session, guest, listing, date(2031, 7, 1), 2)
        paid.payment_status = "paid"
        await db_session.commit()

        expired = await booking_service.expire_stale_bookings(
            db_session, ttl_days=3, now=utcnow() + timedelta(days=10)
        )
        assert expired == []


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_get_booking_visibility(
        self,
        db_session: AsyncSession,
        guest: User,
        host: User,
        other_guest: User,
        admin: User,
        listing: Listing,
    ) -> None:
        booking = await _create(db_session, guest, listing)

        for viewer in (guest, host, admin):
            assert (await booking_service.get_booking(db_session, booking.id, viewer)).id == booking.id
        with pytest.raises(AuthorizationError):
            await booking_service.get_booking(db_session, booking.id, other_guest)

    async def test_lists_and_calendar(self, db_session: AsyncSession, guest: User, host: User, listing: Listing) -> None:
        first = await _create(db_session, guest, listing, JUNE_1, 3)
        second = await _create(db_session, guest, listing, date(2031, 7, 1), 2)
        await booking_service.cancel_booking(db_session, second.id, guest, now=NOW)
        await db_session.commit()

        items, total = await booking_service.list_guest_bookings(db_session, guest.id)
        assert total == 2
        assert {b.id for b in items} == {first.id, second.id}

        items, total = await booking_service.list_host_bookings(db_session, host.id, status="cancelled")
        assert total == 1
        assert items[0].id == second.id

        calendar = await booking_service.listing_calendar(db_session, listing.id)
        assert [(r.date_from, r.date_to, r.kind) for r in calendar] == [(JUNE_1, date(2031, 6, 4), "booking")]

    async def test_find_by_transaction(self, db_session: AsyncSession, guest: User, listing: Listing) -> None:
        booking = await _create(db_session, guest, listing)
        booking.transaction_id = "BNB_main"
        booking.extra_payment_transaction_id = "EXTRA_more"
        await db_session.commit()

        assert (await booking_service.find_booking_by_transaction(db_session, "BNB_main")).id == booking.id
        assert (await booking_service.find_booking_by_transaction(db_session, "EXTRA_more")).id == booking.id
        assert await booking_service.find_booking_by_transaction(db_session, "missing") is None
