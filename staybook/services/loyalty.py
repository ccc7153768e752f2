"""Loyalty ledger: append-only accruals and redemptions.

Balances are always computed from the ledger; there is no stored counter to
drift out of step with it.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.config import settings
from staybook.errors import InsufficientPoints, NotFound, ValidationError
from staybook.models.booking import Booking
from staybook.models.loyalty import LoyaltyReason, LoyaltyTransaction
from staybook.models.review import Review
from staybook.models.user import User

logger = logging.getLogger(__name__)

# (minimum balance, tier), highest first
TIERS: list[tuple[int, str]] = [
    (1000, "PLATINUM"),
    (500, "GOLD"),
    (100, "SILVER"),
    (0, "BRONZE"),
]


def points_for_booking(total: Decimal) -> int:
    """One point per ``loyalty_currency_units_per_point`` spent, rounded down."""
    return int(total // settings.loyalty_currency_units_per_point)


def points_for_review(rating: int) -> int:
    return rating * settings.review_points_per_star


def loyalty_tier(balance: int) -> str:
    for minimum, tier in TIERS:
        if balance >= minimum:
            return tier
    return TIERS[-1][1]


async def accrue(
    db: AsyncSession,
    user_id: uuid.UUID,
    points: int,
    reason: LoyaltyReason,
    booking_id: uuid.UUID | None = None,
    review_id: uuid.UUID | None = None,
) -> LoyaltyTransaction:
    entry = LoyaltyTransaction(
        user_id=user_id,
        points_earned=points,
        points_redeemed=0,
        booking_id=booking_id,
        review_id=review_id,
        reason=reason,
    )
    db.add(entry)
    await db.flush()
    logger.info("Accrued %d loyalty points to user %s (%s)", points, user_id, reason.value)
    return entry


async def accrue_for_booking(db: AsyncSession, booking: Booking) -> LoyaltyTransaction:
    return await accrue(
        db,
        booking.guest_id,
        points_for_booking(booking.total),
        LoyaltyReason.BOOKING,
        booking_id=booking.id,
    )


async def accrue_for_review(db: AsyncSession, review: Review) -> LoyaltyTransaction:
    return await accrue(
        db,
        review.author_id,
        points_for_review(review.rating),
        LoyaltyReason.REVIEW,
        booking_id=review.booking_id,
        review_id=review.id,
    )


async def get_balance(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(
            func.coalesce(
                func.sum(LoyaltyTransaction.points_earned - LoyaltyTransaction.points_redeemed),
                0,
            )
        ).where(LoyaltyTransaction.user_id == user_id)
    )
    return int(result.scalar_one())


async def recent_transactions(db: AsyncSession, user_id: uuid.UUID, limit: int = 10) -> list[LoyaltyTransaction]:
    result = await db.execute(
        select(LoyaltyTransaction)
        .where(LoyaltyTransaction.user_id == user_id)
        .order_by(LoyaltyTransaction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def redeem_points(db: AsyncSession, user_id: uuid.UUID, points: int) -> LoyaltyTransaction:
    """Spend points if the ledger balance covers them.

    The user row is locked first so two concurrent redemptions by the same
    user are checked against each other's entries.
    """
    if points <= 0:
        raise ValidationError("Points to redeem must be positive")

    locked = await db.execute(select(User.id).where(User.id == user_id).with_for_update())
    if locked.scalar_one_or_none() is None:
        raise NotFound("User not found")

    balance = await get_balance(db, user_id)
    if balance < points:
        raise InsufficientPoints(f"Balance of {balance} points cannot cover {points}")

    entry = LoyaltyTransaction(
        user_id=user_id,
        points_earned=0,
        points_redeemed=points,
        reason=LoyaltyReason.REDEMPTION,
    )
    db.add(entry)
    await db.flush()
    logger.info("User %s redeemed %d loyalty points", user_id, points)
    return entry
