"""Shared API dependencies — single import point for all routers.

Re-exports database session and authentication dependencies and builds
the collaborators services need (fee schedule, gateway charger, notifier)
from the injected ``Settings`` so tests can override any of them::

    from stayride.api.deps import get_db, get_current_active_user
"""

from collections.abc import Callable
from functools import partial

from fastapi import BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayride.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    require_admin,
)
from stayride.config import Settings, get_settings
from stayride.database import get_db, get_session_factory
from stayride.models.user import User
from stayride.payments.gateway import initiate_charge
from stayride.services.fees import FeeSchedule
from stayride.services.notifier import Notifier
from stayride.services.payment_service import Charger, PaymentUrls
from stayride.services.side_effects import run_outbox


def get_fee_schedule(config: Settings = Depends(get_settings)) -> FeeSchedule:
    return FeeSchedule.from_settings(config)


def get_charger(config: Settings = Depends(get_settings)) -> Charger:
    """The gateway call used to open checkout sessions."""
    return partial(initiate_charge, config=config)


def get_notifier() -> Notifier:
    return Notifier()


def get_outbox_dispatch(
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
    config: Settings = Depends(get_settings),
) -> Callable[[], None]:
    """Return a callable that delivers queued outbox events after the response.

    Routes call it after committing, so the events it reads are visible.
    """
    return partial(background_tasks.add_task, run_outbox, session_factory, notifier, config)


def get_payment_urls(config: Settings = Depends(get_settings)) -> PaymentUrls:
    callbacks = f"{config.api_url}/api/v1/webhooks/payment"
    return PaymentUrls(
        success_url=f"{callbacks}/success",
        extra_success_url=f"{callbacks}/extra-success",
        ipn_url=f"{callbacks}/ipn",
        fail_url=f"{callbacks}/fail",
        cancel_url=f"{callbacks}/cancel",
    )


async def get_writable_user(
    user: User = Depends(get_current_active_user),
    config: Settings = Depends(get_settings),
) -> User:
    """Active user allowed to change state; blocked while in maintenance.

    Raises:
        HTTPException 503: If maintenance mode is on and the user is not an admin.
    """
    if config.maintenance_mode and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The platform is under maintenance. Please try again later.",
        )
    return user


__all__ = [
    "get_db",
    "get_session_factory",
    "get_settings",
    "get_current_user",
    "get_current_active_user",
    "get_writable_user",
    "require_admin",
    "get_fee_schedule",
    "get_charger",
    "get_notifier",
    "get_outbox_dispatch",
    "get_payment_urls",
]
