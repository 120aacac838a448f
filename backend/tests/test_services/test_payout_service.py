"""Tests for payout ledger operations."""

import uuid
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import NotFoundError
from stayride.models.booking import Booking
from stayride.models.listing import Listing
from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.services import booking_service, payment_service, payout_service
from stayride.services.availability import lock_trip
from stayride.services.fees import FeeSchedule
from stayride.services.payment_service import PaymentUrls

NOW = datetime(2031, 5, 1, 12, 0)
JUNE_1 = date(2031, 6, 1)

URLS = PaymentUrls(
    success_url="https://api.test/success",
    extra_success_url="https://api.test/extra-success",
    fail_url="https://api.test/fail",
    cancel_url="https://api.test/cancel",
    ipn_url="https://api.test/ipn",
)


async def _paid_combined(
    db: AsyncSession, guest: User, listing: Listing, trip: Trip, charger: AsyncMock, schedule: FeeSchedule
) -> Booking:
    result = await booking_service.create_combined_booking(
        db, guest, listing.id, JUNE_1, JUNE_1 + timedelta(days=2), 2, schedule, trip_id=trip.id, now=NOW
    )
    booking = result.booking
    await payment_service.initiate_payment(db, booking.id, guest, charger, URLS)
    await payment_service.handle_payment_success(db, booking.transaction_id, schedule, now=NOW)
    await db.commit()
    return booking


class TestHostPayouts:
    async def test_mark_paid_is_idempotent(
        self,
        db_session: AsyncSession,
        guest: User,
        listing: Listing,
        trip: Trip,
        charger: AsyncMock,
        schedule: FeeSchedule,
    ) -> None:
        booking = await _paid_combined(db_session, guest, listing, trip, charger, schedule)
        pending = await payout_service.list_pending_payouts(db_session)
        assert [p.booking_id for p in pending] == [booking.id]

        paid_at = datetime(2031, 6, 5, 9, 0)
        payout = await payout_service.mark_payout_paid(db_session, pending[0].id, now=paid_at)
        await db_session.commit()

        assert payout.status == "paid"
        assert payout.paid_at == paid_at
        assert booking.payout_issued is True
        assert await payout_service.list_pending_payouts(db_session) == []

        again = await payout_service.mark_payout_paid(db_session, payout.id, now=paid_at + timedelta(days=1))
        assert again.paid_at == paid_at

    async def test_unknown_payout(self, db_session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await payout_service.mark_payout_paid(db_session, uuid.uuid4())


class TestDriverPayouts:
    async def test_mark_driver_payout_paid(
        self,
        db_session: AsyncSession,
        guest: User,
        listing: Listing,
        trip: Trip,
        charger: AsyncMock,
        schedule: FeeSchedule,
    ) -> None:
        await _paid_combined(db_session, guest, listing, trip, charger, schedule)
        pending = await payout_service.list_pending_driver_payouts(db_session)
        assert len(pending) == 1

        payout = await payout_service.mark_driver_payout_paid(db_session, pending[0].id)
        await db_session.commit()

        assert payout.status == "paid"
        assert (await lock_trip(db_session, trip.id)).payout_issued is True
        assert await payout_service.list_pending_driver_payouts(db_session) == []

    async def test_unknown_driver_payout(self, db_session: AsyncSession) -> None:
        with pytest.raises(NotFoundError):
            await payout_service.mark_driver_payout_paid(db_session, uuid.uuid4())


class TestOverduePayouts:
    async def test_checked_in_paid_bookings_without_payout(
        self,
        db_session: AsyncSession,
        guest: User,
        listing: Listing,
        trip: Trip,
        charger: AsyncMock,
        schedule: FeeSchedule,
    ) -> None:
        booking = await _paid_combined(db_session, guest, listing, trip, charger, schedule)
        checked_in = datetime(2031, 6, 1, 14, 0)
        await booking_service.check_in(db_session, booking.id, guest, now=checked_in)
        await db_session.commit()

        soon = await payout_service.list_overdue_payouts(db_session, now=checked_in + timedelta(hours=2))
        late = await payout_service.list_overdue_payouts(db_session, now=checked_in + timedelta(hours=30))

        assert soon == []
        assert [b.id for b in late] == [booking.id]

        payout = (await payout_service.list_pending_payouts(db_session))[0]
        await payout_service.mark_payout_paid(db_session, payout.id)
        await db_session.commit()
        assert await payout_service.list_overdue_payouts(db_session, now=checked_in + timedelta(hours=30)) == []
