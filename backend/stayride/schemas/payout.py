"""Pydantic v2 schemas for the payout operations surface."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class PayoutResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    host_id: uuid.UUID
    gross: Decimal
    amount: Decimal
    guest_fee: Decimal
    host_fee: Decimal
    vat: Decimal
    method: str
    status: str
    notes: str | None = None
    paid_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DriverPayoutResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    booking_id: uuid.UUID
    driver_id: uuid.UUID
    subtotal: Decimal
    amount: Decimal
    service_fee: Decimal
    vat: Decimal
    method: str
    status: str
    paid_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OverduePayoutResponse(BaseModel):
    """A paid, checked-in booking whose host has not been paid yet."""

    id: uuid.UUID
    listing_id: uuid.UUID
    guest_id: uuid.UUID
    date_from: date
    date_to: date
    paid_amount: Decimal
    check_in_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
