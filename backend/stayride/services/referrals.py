"""Referral rewards — the referrer of a guest is rewarded once, on the guest's first paid booking."""

import logging
import secrets
import uuid
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stayride.models.promo_code import PromoCode
from stayride.models.user import User
from stayride.services.outbox import enqueue_notification
from stayride.timeutils import utcnow

logger = logging.getLogger(__name__)


def _new_promo_code() -> str:
    return f"REF{secrets.token_hex(4).upper()}"


async def grant_referral_reward(
    db: AsyncSession,
    guest_id: uuid.UUID,
    booking_id: uuid.UUID | None = None,
    *,
    promo_discount: Decimal,
    promo_valid_days: int,
) -> PromoCode | None:
    """Reward the guest's referrer with one reward point and one promo code.

    The guest's ``referral_rewarded`` flag is flipped with a conditional
    UPDATE; only the caller that actually flips it goes on to grant the
    reward, so retried payment callbacks cannot reward twice.
    """
    guest = await db.get(User, guest_id)
    if guest is None or not guest.referred_by or guest.referral_rewarded:
        return None

    result = await db.execute(select(User).where(User.referral_code == guest.referred_by))
    referrer = result.scalar_one_or_none()
    if referrer is None:
        logger.warning(
            "Guest %s was referred by unknown code %s (booking %s)",
            guest_id,
            guest.referred_by,
            booking_id,
        )
        return None

    claimed = await db.execute(
        update(User)
        .where(User.id == guest_id, User.referral_rewarded.is_(False))
        .values(referral_rewarded=True)
        .execution_options(synchronize_session="fetch")
    )
    if claimed.rowcount != 1:
        logger.info("Referral reward for guest %s already granted, skipping", guest_id)
        return None

    await db.execute(
        update(User)
        .where(User.id == referrer.id)
        .values(referral_rewards=User.referral_rewards + 1)
        .execution_options(synchronize_session="fetch")
    )

    promo = PromoCode(
        code=_new_promo_code(),
        discount=promo_discount,
        discount_type="flat",
        scope="stay",
        issued_to_id=referrer.id,
        expires_at=utcnow() + timedelta(days=promo_valid_days),
        usage_limit=1,
    )
    db.add(promo)
    await db.flush()

    await enqueue_notification(
        db,
        "referral_reward",
        {"promo_code": promo.code, "discount": promo.discount, "expires_at": promo.expires_at.date()},
        user_id=referrer.id,
        booking_id=booking_id,
    )
    logger.info(
        "Referral reward granted to %s for guest %s (booking %s, promo %s)",
        referrer.id,
        guest_id,
        booking_id,
        promo.code,
    )
    return promo
