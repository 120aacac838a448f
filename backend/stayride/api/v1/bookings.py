"""Bookings API router.

Creation, lifecycle transitions and date-change requests. Every mutating
route commits explicitly before returning and then hands queued
notifications to the outbox dispatcher as a background task.
"""

import uuid
from collections.abc import Callable
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.api.deps import (
    get_current_active_user,
    get_db,
    get_fee_schedule,
    get_outbox_dispatch,
    get_settings,
    get_writable_user,
)
from stayride.config import Settings
from stayride.models.booking import Booking
from stayride.models.user import User
from stayride.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    CalendarRangeResponse,
    CombinedBookingCreate,
    CombinedBookingResponse,
    ModificationCreate,
    ModificationRespond,
    PriceBreakdown,
)
from stayride.services import booking_service, modification_service
from stayride.services.fees import FeeSchedule

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a listing",
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
) -> Booking:
    """Create a ``pending/unpaid`` booking.

    Fails with 400 for past or inverted dates and too many guests, and with
    409 when the dates overlap another booking or a blocked range.
    """
    booking = await booking_service.create_booking(
        db, current_user, body.listing_id, body.date_from, body.date_to, body.guests
    )
    await db.commit()
    return booking


@router.post(
    "/combined",
    response_model=CombinedBookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a stay together with seats on a trip",
)
async def create_combined_booking(
    body: CombinedBookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    schedule: FeeSchedule = Depends(get_fee_schedule),
) -> dict:
    result = await booking_service.create_combined_booking(
        db,
        current_user,
        body.listing_id,
        body.date_from,
        body.date_to,
        body.guests,
        schedule,
        trip_id=body.trip_id,
        promo_code=body.promo_code,
    )
    await db.commit()

    booking, breakdown = result.booking, result.breakdown
    return {
        "booking": booking,
        "breakdown": PriceBreakdown(
            nights=booking.nights,
            price_per_night=booking.price_per_night,
            stay_subtotal=breakdown.stay_subtotal,
            trip_fare=breakdown.trip_fare,
            service_fee=breakdown.service_fee,
            tax=breakdown.tax,
            discount=breakdown.discount,
            total=breakdown.total,
        ),
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/mine", response_model=BookingListResponse, summary="Bookings made by the current user")
async def list_my_bookings(
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(20, ge=1, le=100, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    items, total = await booking_service.list_guest_bookings(db, current_user.id, skip=skip, limit=limit)
    return {"items": items, "total": total}


@router.get("/hosting", response_model=BookingListResponse, summary="Bookings on the current user's listings")
async def list_hosting_bookings(
    status_filter: str | None = Query(None, alias="status", description="Filter by booking status"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(20, ge=1, le=100, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    items, total = await booking_service.list_host_bookings(
        db, current_user.id, status=status_filter, skip=skip, limit=limit
    )
    return {"items": items, "total": total}


@router.get(
    "/listing/{listing_id}/calendar",
    response_model=list[CalendarRangeResponse],
    summary="Occupied date ranges of a listing",
)
async def listing_calendar(
    listing_id: uuid.UUID,
    since: date | None = Query(None, description="Only ranges ending after this date"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list:
    return await booking_service.listing_calendar(db, listing_id, since=since)


@router.get(
    "/transaction/{transaction_id}",
    response_model=BookingResponse,
    summary="Look up a booking by gateway transaction id",
)
async def get_booking_by_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Booking:
    return await booking_service.get_booking_by_transaction(db, transaction_id, current_user)


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Booking:
    return await booking_service.get_booking(db, booking_id, current_user)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/accept", response_model=BookingResponse, summary="Host accepts a booking")
async def accept_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    booking = await booking_service.accept_booking(db, booking_id, current_user)
    await db.commit()
    dispatch()
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingResponse, summary="Cancel a booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    booking = await booking_service.cancel_booking(db, booking_id, current_user)
    await db.commit()
    dispatch()
    return booking


@router.post("/{booking_id}/check-in", response_model=BookingResponse, summary="Guest checks in")
async def check_in(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    booking = await booking_service.check_in(db, booking_id, current_user)
    await db.commit()
    dispatch()
    return booking


@router.post("/{booking_id}/check-out", response_model=BookingResponse, summary="Guest checks out")
async def check_out(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    config: Settings = Depends(get_settings),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    booking = await booking_service.check_out(
        db,
        booking_id,
        current_user,
        schedule,
        review_url=f"{config.frontend_url}/dashboard/reviews",
    )
    await db.commit()
    dispatch()
    return booking


# ---------------------------------------------------------------------------
# Modification requests
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/modification",
    response_model=BookingResponse,
    summary="Guest requests new dates",
)
async def request_modification(
    booking_id: uuid.UUID,
    body: ModificationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    booking = await modification_service.request_modification(
        db, booking_id, current_user, body.date_from, body.date_to
    )
    await db.commit()
    dispatch()
    return booking


@router.post(
    "/{booking_id}/modification/respond",
    response_model=BookingResponse,
    summary="Host accepts or rejects requested dates",
)
async def respond_modification(
    booking_id: uuid.UUID,
    body: ModificationRespond,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Booking:
    """Accepting re-validates availability; a 409 leaves the request open."""
    booking = await modification_service.respond_modification(db, booking_id, current_user, body.action, schedule)
    await db.commit()
    dispatch()
    return booking
