"""Tests for trip seat reservation endpoints."""

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.timeutils import utcnow


async def _reserve(client: AsyncClient, headers: dict, trip: Trip, seats: int):
    return await client.post(f"/api/v1/trips/{trip.id}/reservations", json={"seats": seats}, headers=headers)


class TestReserveSeats:
    async def test_reserve(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        response = await _reserve(client, auth_headers(guest), trip, 2)

        assert response.status_code == 201
        data = response.json()
        assert data["seats_available"] == 2
        assert data["status"] == "available"
        assert [(p["user_id"], p["seats"], p["status"]) for p in data["passengers"]] == [
            (str(guest.id), 2, "reserved")
        ]

    async def test_full_trip_becomes_booked(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        response = await _reserve(client, auth_headers(guest), trip, 4)

        assert response.json()["status"] == "booked"
        assert response.json()["seats_available"] == 0

    async def test_overbooking_conflict(
        self, client: AsyncClient, auth_headers, guest: User, other_guest: User, trip: Trip
    ) -> None:
        await _reserve(client, auth_headers(guest), trip, 3)

        response = await _reserve(client, auth_headers(other_guest), trip, 2)

        assert response.status_code == 409

    async def test_driver_cannot_reserve(self, client: AsyncClient, auth_headers, driver: User, trip: Trip) -> None:
        response = await _reserve(client, auth_headers(driver), trip, 1)

        assert response.status_code == 400
        assert response.json()["detail"] == "Drivers cannot reserve seats on their own trip"

    async def test_zero_seats_is_422(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        response = await _reserve(client, auth_headers(guest), trip, 0)
        assert response.status_code == 422

    async def test_unknown_trip(self, client: AsyncClient, auth_headers, guest: User) -> None:
        response = await client.post(
            f"/api/v1/trips/{uuid.uuid4()}/reservations", json={"seats": 1}, headers=auth_headers(guest)
        )
        assert response.status_code == 404


class TestCancelReservation:
    async def test_cancel_reopens_seats(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        await _reserve(client, auth_headers(guest), trip, 4)

        response = await client.request(
            "DELETE",
            f"/api/v1/trips/{trip.id}/reservations",
            json={"reason": "Plans changed"},
            headers=auth_headers(guest),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "available"
        assert data["seats_available"] == 4
        assert data["passengers"][0]["status"] == "cancelled"
        assert data["passengers"][0]["cancel_reason"] == "Plans changed"

    async def test_cancel_without_body(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        await _reserve(client, auth_headers(guest), trip, 1)

        response = await client.delete(f"/api/v1/trips/{trip.id}/reservations", headers=auth_headers(guest))

        assert response.status_code == 200
        assert response.json()["passengers"][0]["cancel_reason"] == "No reason provided"

    async def test_cancel_inside_cutoff(
        self, client: AsyncClient, auth_headers, guest: User, trip: Trip, db_session: AsyncSession
    ) -> None:
        trip.departure_at = utcnow() + timedelta(hours=3)
        db_session.add(trip)
        await db_session.commit()
        await _reserve(client, auth_headers(guest), trip, 1)

        response = await client.delete(f"/api/v1/trips/{trip.id}/reservations", headers=auth_headers(guest))

        assert response.status_code == 400
        assert response.json()["detail"] == "Cancellation not allowed within 24 hours of trip departure."

    async def test_no_reservation(self, client: AsyncClient, auth_headers, guest: User, trip: Trip) -> None:
        response = await client.delete(f"/api/v1/trips/{trip.id}/reservations", headers=auth_headers(guest))
        assert response.status_code == 400
