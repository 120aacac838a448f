"""Transactional outbox — record side effects now, deliver them after commit.

Services call ``enqueue`` inside the same transaction as the state change
they describe. After the transaction commits, ``dispatch_pending_events``
hands every pending event to the handler registered for its topic, each
in its own session, so a failing email or referral grant can never undo
a payment or a booking transition.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayride.models.notification import OutboxEvent
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)

EventHandler = Callable[[AsyncSession, OutboxEvent], Awaitable[None]]

NOTIFY_TOPIC = "notify"
REFERRAL_TOPIC = "referral.reward"


def _jsonable(value: Any) -> Any:
    """Convert dates, decimals and UUIDs so the payload fits a JSON column."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    return value


async def enqueue(
    db: AsyncSession,
    topic: str,
    payload: dict[str, Any],
    booking_id: uuid.UUID | None = None,
) -> OutboxEvent:
    """Append an event to the outbox in the caller's transaction."""
    event = OutboxEvent(topic=topic, payload=_jsonable(payload), booking_id=booking_id)
    db.add(event)
    await db.flush()
    return event


async def enqueue_notification(
    db: AsyncSession,
    template: str,
    data: dict[str, Any],
    *,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
    booking_id: uuid.UUID | None = None,
) -> OutboxEvent:
    """Queue a templated notification for a user (or a bare email address)."""
    payload = {
        "template": template,
        "user_id": user_id,
        "email": email,
        "data": data,
    }
    return await enqueue(db, NOTIFY_TOPIC, payload, booking_id=booking_id)


class _Skipped(Exception):
    """Event already claimed or processed by another dispatcher."""


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


async def dispatch_pending_events(
    session_factory: async_sessionmaker[AsyncSession],
    handlers: dict[str, EventHandler],
    *,
    max_attempts: int = 5,
    batch_size: int = 100,
) -> DispatchResult:
    """Deliver pending outbox events, oldest first.

    Each event runs in its own session and transaction. A failure is logged
    with the event's booking context and counted against ``max_attempts``;
    once exhausted the event is parked as ``failed`` for manual follow-up.
    """
    async with session_factory() as db:
        result = await db.execute(
            select(OutboxEvent.id)
            .where(OutboxEvent.status == "pending")
            .order_by(OutboxEvent.created_at)
            .limit(batch_size)
        )
        event_ids = list(result.scalars().all())

    outcome = DispatchResult()
    for event_id in event_ids:
        error = await _dispatch_one(session_factory, handlers, event_id)
        if error is None:
            outcome.sent += 1
        elif isinstance(error, _Skipped):
            outcome.skipped += 1
        else:
            outcome.failed += 1
            await _record_failure(session_factory, event_id, error, max_attempts)

    if event_ids:
        logger.info(
            "Outbox dispatch finished: sent=%d failed=%d skipped=%d",
            outcome.sent,
            outcome.failed,
            outcome.skipped,
        )
    return outcome


async def _dispatch_one(
    session_factory: async_sessionmaker[AsyncSession],
    handlers: dict[str, EventHandler],
    event_id: uuid.UUID,
) -> Exception | None:
    async with session_factory() as db:
        result = await db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.id == event_id, OutboxEvent.status == "pending")
            .with_for_update(skip_locked=True)
        )
        event = result.scalar_one_or_none()
        if event is None:
            return _Skipped()

        topic = event.topic
        booking_id = event.booking_id
        handler = handlers.get(topic)
        try:
            if handler is None:
                raise LookupError(f"No handler registered for outbox topic {topic!r}")
            await handler(db, event)
            event.status = "sent"
            event.attempts += 1
            event.processed_at = utcnow()
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.exception(
                "Outbox event %s (topic=%s, booking=%s) failed",
                event_id,
                topic,
                booking_id,
            )
            return exc
    return None


async def _record_failure(
    session_factory: async_sessionmaker[AsyncSession],
    event_id: uuid.UUID,
    error: Exception,
    max_attempts: int,
) -> None:
    async with session_factory() as db:
        event = await db.get(OutboxEvent, event_id)
        if event is None:
            return
        event.attempts += 1
        event.last_error = repr(error)[:2000]
        if event.attempts >= max_attempts:
            event.status = "failed"
            event.processed_at = utcnow()
            logger.error(
                "Outbox event %s (topic=%s, booking=%s) parked after %d attempts",
                event.id,
                event.topic,
                event.booking_id,
                event.attempts,
            )
        await db.commit()
