"""Coupon redemption guard: eligibility checks and exactly-once redemption."""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.database import utcnow
from staybook.errors import CouponRejected, CouponRejectionReason, NotFound, ValidationError
from staybook.models.coupon import Coupon, DiscountType, Redemption
from staybook.services.pricing import ZERO, to_money

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon:
    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    coupon = result.scalar_one_or_none()
    if coupon is None:
        raise NotFound(f"Coupon {normalize_code(code)} not found")
    return coupon


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal``, never negative and never above the subtotal."""
    if coupon.discount_type is DiscountType.PERCENTAGE:
        discount = subtotal * coupon.discount_value / Decimal(100)
    else:
        discount = coupon.discount_value
    return to_money(min(max(discount, ZERO), subtotal))


async def evaluate_coupon(
    db: AsyncSession,
    coupon: Coupon,
    user_id: uuid.UUID,
    subtotal: Decimal,
    now: datetime | None = None,
) -> Decimal:
    """Validate eligibility and return the discount, recording nothing.

    Checks run in a fixed order and the first failure wins, so a given
    coupon/user/booking always yields the same rejection.
    """
    now = now or utcnow()

    if not coupon.is_active or not (coupon.valid_from <= now <= coupon.valid_until):
        raise CouponRejected(CouponRejectionReason.INACTIVE, f"Coupon {coupon.code} is not active")

    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponRejected(CouponRejectionReason.EXHAUSTED, f"Coupon {coupon.code} usage limit reached")

    prior = await db.execute(
        select(func.count())
        .select_from(Redemption)
        .where(Redemption.coupon_id == coupon.id, Redemption.user_id == user_id)
    )
    if prior.scalar_one() >= coupon.max_uses_per_user:
        raise CouponRejected(
            CouponRejectionReason.ALREADY_REDEEMED,
            f"Coupon {coupon.code} has already been used by this account",
        )

    if coupon.min_booking_value is not None and subtotal < coupon.min_booking_value:
        raise CouponRejected(
            CouponRejectionReason.MINIMUM_NOT_MET,
            f"Minimum booking value for {coupon.code} is {coupon.min_booking_value:.2f}",
        )

    return compute_discount(coupon, subtotal)


async def redeem_coupon(
    db: AsyncSession,
    coupon: Coupon,
    user_id: uuid.UUID,
    booking_id: uuid.UUID,
    discount: Decimal,
) -> Redemption:
    """Take one usage slot and record the redemption in the caller's transaction.

    The usage counter moves through a conditional UPDATE, so two concurrent
    redemptions can't both take the last slot; the (coupon, user) unique key
    stops the same user redeeming twice. Either rejection propagates and the
    caller's transaction rolls back both writes.

    A failed flush expires every loaded instance, so the coupon's identity is
    read up front.
    """
    coupon_id, code = coupon.id, coupon.code
    result = await db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
        )
        .values(
            used_count=Coupon.used_count + 1,
            total_discount=Coupon.total_discount + discount,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CouponRejected(CouponRejectionReason.EXHAUSTED, f"Coupon {code} usage limit reached")

    redemption = Redemption(
        coupon_id=coupon_id,
        user_id=user_id,
        booking_id=booking_id,
        discount_amount=discount,
    )
    db.add(redemption)
    try:
        await db.flush()
    except IntegrityError as e:
        raise CouponRejected(
            CouponRejectionReason.ALREADY_REDEEMED,
            f"Coupon {code} has already been used by this account",
        ) from e

    logger.info("Coupon %s redeemed by user %s for booking %s (discount %s)", code, user_id, booking_id, discount)
    return redemption


async def create_coupon(
    db: AsyncSession,
    *,
    code: str,
    name: str,
    discount_type: DiscountType,
    discount_value: Decimal,
    valid_from: datetime,
    valid_until: datetime,
    max_uses: int | None = None,
    max_uses_per_user: int = 1,
    min_booking_value: Decimal | None = None,
) -> Coupon:
    """Admin operation: register a new coupon code."""
    if valid_until <= valid_from:
        raise ValidationError("valid_until must be after valid_from")
    if discount_type is DiscountType.PERCENTAGE and not ZERO < discount_value <= 100:
        raise ValidationError("Percentage discounts must be in (0, 100]")

    code = normalize_code(code)
    coupon = Coupon(
        code=code,
        name=name,
        discount_type=discount_type,
        discount_value=discount_value,
        valid_from=valid_from,
        valid_until=valid_until,
        max_uses=max_uses,
        max_uses_per_user=max_uses_per_user,
        min_booking_value=min_booking_value,
    )
    db.add(coupon)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ValidationError(f"Coupon code {code} already exists") from e
    logger.info("Created coupon %s (%s %s)", code, discount_type.value, discount_value)
    return coupon
