"""Payment gateway callbacks — success redirect, IPN and extra-payment success.

The gateway posts form-encoded payloads and retries until it gets an
answer it likes, so these routes never fail on bad input: malformed
payloads and unexpected errors are logged, audited and acknowledged with
booking state left unchanged. Only a transaction id no booking carries
answers 404.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode

import pydantic
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayride.api.deps import get_fee_schedule, get_outbox_dispatch, get_session_factory, get_settings
from stayride.config import Settings
from stayride.errors import NotFoundError
from stayride.schemas.payment import GatewayCallback
from stayride.services import payment_service
from stayride.services.fees import FeeSchedule
from stayride.services.payment_service import CallbackResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks/payment", tags=["webhooks"])

CallbackHandler = Callable[[AsyncSession, GatewayCallback, FeeSchedule], Awaitable[CallbackResult]]


async def _on_success(db: AsyncSession, callback: GatewayCallback, schedule: FeeSchedule) -> CallbackResult:
    return await payment_service.handle_payment_success(
        db, callback.tran_id, schedule, validation_id=callback.val_id, amount=callback.amount
    )


async def _on_ipn(db: AsyncSession, callback: GatewayCallback, schedule: FeeSchedule) -> CallbackResult:
    return await payment_service.handle_ipn(
        db,
        callback.tran_id,
        callback.status or "",
        schedule,
        validation_id=callback.val_id,
        amount=callback.amount,
    )


async def _on_extra_success(db: AsyncSession, callback: GatewayCallback, schedule: FeeSchedule) -> CallbackResult:
    return await payment_service.handle_extra_payment_success(db, callback.tran_id, amount=callback.amount)


# Map callback kinds to handler functions
CALLBACK_HANDLERS: dict[str, CallbackHandler] = {
    "success": _on_success,
    "ipn": _on_ipn,
    "extra_success": _on_extra_success,
}


async def _read_payload(request: Request) -> dict:
    body = await request.body()
    if "application/json" in request.headers.get("content-type", ""):
        try:
            data = json.loads(body or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))


async def _audit(
    session_factory: async_sessionmaker[AsyncSession],
    kind: str,
    payload: dict,
    outcome: str,
) -> None:
    async with session_factory() as db:
        await payment_service.record_callback(db, kind, payload.get("tran_id"), payload, outcome)
        await db.commit()


async def process_callback(
    kind: str,
    payload: dict,
    session_factory: async_sessionmaker[AsyncSession],
    schedule: FeeSchedule,
) -> str:
    """Run the handler for ``kind`` in its own session and return the outcome.

    Outcomes besides the handler's own: ``malformed``, ``not_found``, ``error``.
    """
    try:
        callback = GatewayCallback.model_validate(payload)
    except pydantic.ValidationError:
        logger.warning("Malformed %s callback ignored: %s", kind, payload)
        await _audit(session_factory, kind, payload, "malformed")
        return "malformed"

    handler = CALLBACK_HANDLERS[kind]
    logger.info("Processing %s callback for transaction %s", kind, callback.tran_id)

    # Webhooks have no auth context; they open their own session
    async with session_factory() as db:
        try:
            result = await handler(db, callback, schedule)
            await payment_service.record_callback(db, kind, callback.tran_id, payload, result.outcome)
            await db.commit()
        except NotFoundError:
            await db.rollback()
            logger.warning("%s callback for unknown transaction %s", kind, callback.tran_id)
            outcome = "not_found"
        except Exception:
            await db.rollback()
            logger.exception("Error processing %s callback for transaction %s", kind, callback.tran_id)
            outcome = "error"
        else:
            return result.outcome

    await _audit(session_factory, kind, payload, outcome)
    return outcome


def _redirect(config: Settings, outcome: str, tran_id: str | None, paid_status: str) -> RedirectResponse:
    page_status = paid_status if outcome in ("applied", "duplicate") else outcome
    query = urlencode({"status": page_status, "tran_id": tran_id or ""})
    return RedirectResponse(f"{config.frontend_url}/payment-success?{query}", status_code=status.HTTP_303_SEE_OTHER)


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Booking not found"})


@router.post("/success", summary="Gateway success redirect")
async def payment_success(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    config: Settings = Depends(get_settings),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
):
    payload = await _read_payload(request)
    outcome = await process_callback("success", payload, session_factory, schedule)
    if outcome == "not_found":
        return _not_found()
    dispatch()
    return _redirect(config, outcome, payload.get("tran_id"), "paid")


@router.post("/ipn", summary="Gateway instant payment notification")
async def payment_ipn(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
):
    payload = await _read_payload(request)
    outcome = await process_callback("ipn", payload, session_factory, schedule)
    if outcome == "not_found":
        return _not_found()
    dispatch()
    return {"status": "received", "outcome": outcome}


@router.post("/extra-success", summary="Gateway success redirect for an extra payment")
async def extra_payment_success(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    schedule: FeeSchedule = Depends(get_fee_schedule),
    config: Settings = Depends(get_settings),
    dispatch: Callable[[], None] = Depends(get_outbox_dispatch),
):
    payload = await _read_payload(request)
    outcome = await process_callback("extra_success", payload, session_factory, schedule)
    if outcome == "not_found":
        return _not_found()
    dispatch()
    return _redirect(config, outcome, payload.get("tran_id"), "extra-paid")


@router.post("/fail", summary="Gateway failure redirect")
async def payment_fail(config: Settings = Depends(get_settings)) -> RedirectResponse:
    return RedirectResponse(f"{config.frontend_url}/payment-fail", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/cancel", summary="Gateway cancel redirect")
async def payment_cancel(config: Settings = Depends(get_settings)) -> RedirectResponse:
    return RedirectResponse(f"{config.frontend_url}/payment-cancel", status_code=status.HTTP_303_SEE_OTHER)
