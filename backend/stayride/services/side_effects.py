"""Wiring between outbox topics and the collaborators that handle them."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayride.config import Settings, settings
from stayride.models.notification import OutboxEvent
from stayride.services.notifier import Notifier
from stayride.services.outbox import (
    NOTIFY_TOPIC,
    REFERRAL_TOPIC,
    DispatchResult,
    EventHandler,
    dispatch_pending_events,
)
from stayride.services.referrals import grant_referral_reward


def build_event_handlers(notifier: Notifier, config: Settings) -> dict[str, EventHandler]:
    """Map every outbox topic to its handler."""

    async def handle_referral(db: AsyncSession, event: OutboxEvent) -> None:
        await grant_referral_reward(
            db,
            uuid.UUID(event.payload["guest_id"]),
            event.booking_id,
            promo_discount=config.referral_promo_discount,
            promo_valid_days=config.referral_promo_valid_days,
        )

    return {
        NOTIFY_TOPIC: notifier.handle_event,
        REFERRAL_TOPIC: handle_referral,
    }


async def run_outbox(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier,
    config: Settings = settings,
) -> DispatchResult:
    """Deliver everything currently pending in the outbox."""
    return await dispatch_pending_events(
        session_factory,
        build_event_handlers(notifier, config),
        max_attempts=config.outbox_max_attempts,
        batch_size=config.outbox_batch_size,
    )
