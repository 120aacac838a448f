"""Payout operations API router (admin only)."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.api.deps import get_db, get_settings, require_admin
from stayride.config import Settings
from stayride.models.booking import Booking
from stayride.models.payout import DriverPayout, Payout
from stayride.models.user import User
from stayride.schemas.payout import DriverPayoutResponse, OverduePayoutResponse, PayoutResponse
from stayride.services import payout_service

router = APIRouter(prefix="/api/v1/payouts", tags=["payouts"])


@router.get("/pending", response_model=list[PayoutResponse], summary="Host payouts awaiting transfer")
async def list_pending_payouts(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> list[Payout]:
    return await payout_service.list_pending_payouts(db)


@router.get("/overdue", response_model=list[OverduePayoutResponse], summary="Checked-in stays with no payout issued")
async def list_overdue_payouts(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    config: Settings = Depends(get_settings),
) -> list[Booking]:
    return await payout_service.list_overdue_payouts(db, overdue_hours=config.payout_overdue_hours)


@router.post("/{payout_id}/mark-paid", response_model=PayoutResponse, summary="Mark a host payout as paid")
async def mark_payout_paid(
    payout_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Payout:
    payout = await payout_service.mark_payout_paid(db, payout_id)
    await db.commit()
    return payout


@router.get("/drivers/pending", response_model=list[DriverPayoutResponse], summary="Driver payouts awaiting transfer")
async def list_pending_driver_payouts(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> list[DriverPayout]:
    return await payout_service.list_pending_driver_payouts(db)


@router.post(
    "/drivers/{payout_id}/mark-paid",
    response_model=DriverPayoutResponse,
    summary="Mark a driver payout as paid",
)
async def mark_driver_payout_paid(
    payout_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> DriverPayout:
    payout = await payout_service.mark_driver_payout_paid(db, payout_id)
    await db.commit()
    return payout
