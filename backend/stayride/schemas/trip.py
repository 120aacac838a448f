"""Pydantic v2 schemas for trip seat reservations."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SeatReservationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    seats: int = Field(1, ge=1)


class SeatReservationCancel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(None, max_length=255)


class PassengerResponse(BaseModel):
    user_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    seats: int
    status: str
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TripResponse(BaseModel):
    id: uuid.UUID
    driver_id: uuid.UUID
    origin: str
    destination: str
    departure_at: datetime
    total_seats: int
    seats_available: int
    fare_per_seat: Decimal
    status: str
    passengers: list[PassengerResponse]

    model_config = ConfigDict(from_attributes=True)
