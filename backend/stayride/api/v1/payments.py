"""Payments API router — checkout initiation and refund claims."""

from collections.abc import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.api.deps import (
    get_charger,
    get_db,
    get_outbox_dispatch,
    get_payment_urls,
    get_settings,
    get_writable_user,
)
from stayride.config import Settings
from stayride.models.user import User
from stayride.schemas.common import MessageResponse
from stayride.schemas.payment import PaymentInitiate, PaymentSessionResponse, RefundClaim
from stayride.services import payment_service
from stayride.services.payment_service import Charger, PaymentSession, PaymentUrls

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("/initiate", response_model=PaymentSessionResponse, summary="Start checkout for a booking")
async def initiate_payment(
    body: PaymentInitiate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    charger: Charger = Depends(get_charger),
    urls: PaymentUrls = Depends(get_payment_urls),
) -> PaymentSession:
    """Return the gateway page URL. A gateway failure answers 502 and changes nothing."""
    session = await payment_service.initiate_payment(db, body.booking_id, current_user, charger, urls)
    await db.commit()
    return session


@router.post("/extra", response_model=PaymentSessionResponse, summary="Pay the balance after a date change")
async def initiate_extra_payment(
    body: PaymentInitiate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    charger: Charger = Depends(get_charger),
    urls: PaymentUrls = Depends(get_payment_urls),
) -> PaymentSession:
    session = await payment_service.initiate_extra_payment(db, body.booking_id, current_user, charger, urls)
    await db.commit()
    return session


@router.post("/claim-refund", response_model=MessageResponse, summary="Claim a refund owed after a date change")
async def claim_refund(
    body: RefundClaim,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_writable_user),
    config: Settings = Depends(get_settings),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
) -> dict[str, str]:
    await payment_service.claim_refund(db, body.booking_id, current_user, operator_email=config.admin_email)
    await db.commit()
    dispatch()
    return {"message": "Refund request submitted"}
