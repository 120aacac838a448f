"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for reserving a listing. Date checks happen in the service."""

    model_config = ConfigDict(extra="forbid")

    listing_id: uuid.UUID
    date_from: date
    date_to: date
    guests: int = Field(1, ge=1)


class CombinedBookingCreate(BookingCreate):
    """Stay plus optional seats on a trip, priced as one order."""

    trip_id: uuid.UUID | None = None
    promo_code: str | None = Field(None, max_length=50)


class ModificationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date_from: date
    date_to: date


class ModificationRespond(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: str = Field(..., pattern="^(accepted|rejected)$")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ExtraPaymentResponse(BaseModel):
    required: bool
    amount: Decimal
    status: str
    transaction_id: str | None = None
    refund_claimed: bool = False

    model_config = ConfigDict(from_attributes=True)


class ModificationRequestResponse(BaseModel):
    status: str
    requested_from: date | None = None
    requested_to: date | None = None
    requested_by: uuid.UUID | None = None

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    """Booking as seen by its guest, host or an operator."""

    id: uuid.UUID
    guest_id: uuid.UUID
    listing_id: uuid.UUID
    trip_id: uuid.UUID | None = None
    date_from: date
    date_to: date
    nights: int
    guests: int
    seats: int
    combined: bool
    status: str
    payment_status: str
    price_per_night: Decimal
    price: Decimal
    discount: Decimal
    paid_amount: Decimal
    transaction_id: str | None = None
    paid_at: datetime | None = None
    extra_payment: ExtraPaymentResponse | None = None
    modification_request: ModificationRequestResponse
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    payout_issued: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    """Paginated list of bookings."""

    items: list[BookingResponse]
    total: int


class PriceBreakdown(BaseModel):
    nights: int
    price_per_night: Decimal
    stay_subtotal: Decimal
    trip_fare: Decimal
    service_fee: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


class CombinedBookingResponse(BaseModel):
    booking: BookingResponse
    breakdown: PriceBreakdown


class CalendarRangeResponse(BaseModel):
    date_from: date
    date_to: date
    kind: str

    model_config = ConfigDict(from_attributes=True)
