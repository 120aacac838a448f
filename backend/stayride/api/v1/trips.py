"""Trip seat reservation API router."""

import uuid
from collections.abc import Callable

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.api.deps import get_db, get_outbox_dispatch, get_settings, get_writable_user
from stayride.config import Settings
from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.schemas.trip import SeatReservationCancel, SeatReservationCreate, TripResponse
from stayride.services import trip_service

router = APIRouter(prefix="/api/v1/trips", tags=["trips"])


@router.post(
    "/{trip_id}/reservations",
    response_model=TripResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve seats on a trip",
)
async def reserve_seats(
    trip_id: uuid.UUID,
    body: SeatReservationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> Trip:
    """409 when the trip does not have ``seats`` left."""
    trip = await trip_service.reserve_seats(db, trip_id, current_user, body.seats)
    await db.commit()
    dispatch()
    return trip


@router.delete("/{trip_id}/reservations", response_model=TripResponse, summary="Cancel my reservation")
async def cancel_reservation(
    trip_id: uuid.UUID,
    body: SeatReservationCancel | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    config: Settings = Depends(get_settings),
) -> Trip:
    trip = await trip_service.cancel_reservation(
        db,
        trip_id,
        current_user,
        body.reason if body else None,
        cutoff_hours=config.reservation_cancel_cutoff_hours,
    )
    await db.commit()
    return trip
