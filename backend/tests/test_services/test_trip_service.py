"""Tests for seat reservations on trips."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.errors import ConflictError, ValidationError
from stayride.models.notification import OutboxEvent
from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.services import trip_service
from stayride.timeutils import utcnow


class TestReserveSeats:
    async def test_reserves_and_notifies(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        reserved = await trip_service.reserve_seats(db_session, trip.id, guest, 2)
        await db_session.commit()

        assert reserved.seats_available == 2
        assert reserved.status == "available"
        passenger = reserved.passengers[0]
        assert (passenger.user_id, passenger.seats, passenger.status) == (guest.id, 2, "reserved")

        event = (await db_session.execute(select(OutboxEvent))).scalar_one()
        assert event.payload["template"] == "seat_reserved"
        assert event.payload["data"]["total"] == "1600.00"

    async def test_full_trip_becomes_booked(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        reserved = await trip_service.reserve_seats(db_session, trip.id, guest, 4)

        assert reserved.status == "booked"
        assert reserved.seats_available == 0

    async def test_overbooking_rejected(
        self, db_session: AsyncSession, trip: Trip, guest: User, other_guest: User
    ) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 3)
        await db_session.commit()

        with pytest.raises(ConflictError, match="Not enough seats available"):
            await trip_service.reserve_seats(db_session, trip.id, other_guest, 2)

    async def test_second_reservation_rejected(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 1)
        await db_session.commit()

        with pytest.raises(ValidationError, match="Already reserved"):
            await trip_service.reserve_seats(db_session, trip.id, guest, 1)

    async def test_driver_cannot_reserve(self, db_session: AsyncSession, trip: Trip, driver: User) -> None:
        with pytest.raises(ValidationError):
            await trip_service.reserve_seats(db_session, trip.id, driver, 1)

    async def test_departed_trip(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        with pytest.raises(ValidationError, match="already departed"):
            await trip_service.reserve_seats(db_session, trip.id, guest, 1, now=utcnow() + timedelta(days=11))


class TestCancelReservation:
    async def test_cancel_reopens_trip(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 4)
        await db_session.commit()

        cancelled = await trip_service.cancel_reservation(db_session, trip.id, guest, "Plans changed")
        await db_session.commit()

        assert cancelled.status == "available"
        assert cancelled.seats_available == 4
        passenger = cancelled.passengers[0]
        assert passenger.status == "cancelled"
        assert passenger.cancel_reason == "Plans changed"
        assert passenger.cancelled_at is not None

    async def test_default_reason(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 1)

        cancelled = await trip_service.cancel_reservation(db_session, trip.id, guest)

        assert cancelled.passengers[0].cancel_reason == "No reason provided"

    async def test_refused_close_to_departure(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 1)
        await db_session.commit()

        with pytest.raises(ValidationError, match="within 24 hours"):
            await trip_service.cancel_reservation(
                db_session, trip.id, guest, now=trip.departure_at - timedelta(hours=23)
            )

    async def test_without_reservation(self, db_session: AsyncSession, trip: Trip, guest: User) -> None:
        with pytest.raises(ValidationError, match="No active reservation found"):
            await trip_service.cancel_reservation(db_session, trip.id, guest)

    async def test_can_reserve_again_after_cancelling(
        self, db_session: AsyncSession, trip: Trip, guest: User
    ) -> None:
        await trip_service.reserve_seats(db_session, trip.id, guest, 2)
        await trip_service.cancel_reservation(db_session, trip.id, guest)
        await db_session.commit()

        again = await trip_service.reserve_seats(db_session, trip.id, guest, 1)

        assert again.seats_available == 3
