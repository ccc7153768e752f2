"""Booking flows: quote, create, guest cancellation and coupon application.

These orchestrate the availability checker, pricing, the coupon guard, the
state machine and the payment gateway. Ownership rule: a guest only sees and
changes their own bookings; anything else is reported as not found.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.database import utcnow
from staybook.errors import (
    AvailabilityConflict,
    CouponRejected,
    CouponRejectionReason,
    InvalidTransition,
    NotFound,
    PaymentGatewayError,
    ValidationError,
)
from staybook.models.booking import Booking, BookingStatus
from staybook.models.coupon import Coupon
from staybook.models.property import Property
from staybook.models.user import User
from staybook.payments.gateway import PaymentIntent, StripePaymentGateway
from staybook.services.availability import claim_nights, is_available
from staybook.services.booking_state import TransitionResult, TransitionSource, cancel_booking, lock_booking
from staybook.services.coupons import evaluate_coupon, get_coupon_by_code, normalize_code, redeem_coupon
from staybook.services.pricing import ZERO, PriceBreakdown, quote, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    property_id: uuid.UUID
    check_in: date
    check_out: date
    guest_count: int = 1
    coupon_code: str | None = None


@dataclass
class BookingCreated:
    booking: Booking
    breakdown: PriceBreakdown
    payment_intent: PaymentIntent


@dataclass(frozen=True)
class CouponApplication:
    code: str
    discount_type: str
    discount_value: Decimal
    discount_applied: Decimal
    new_total: Decimal


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_property(db: AsyncSession, property_id: uuid.UUID, for_update: bool = False) -> Property:
    """Fetch a bookable property; ``for_update`` serialises bookings per property."""
    query = select(Property).where(Property.id == property_id, Property.is_active.is_(True))
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    prop = result.scalar_one_or_none()
    if prop is None:
        raise NotFound("Property not found")
    return prop


async def get_guest_booking(db: AsyncSession, guest: User, booking_id: uuid.UUID) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id, Booking.guest_id == guest.id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def _validate_stay(prop: Property, check_in: date, check_out: date, guest_count: int) -> None:
    if check_out <= check_in:
        raise ValidationError("check_out must be after check_in")
    if guest_count < 1:
        raise ValidationError("guest_count must be at least 1")
    if prop.max_guests is not None and guest_count > prop.max_guests:
        raise ValidationError(f"Property accommodates at most {prop.max_guests} guests")


def _require_amount_due(total: Decimal, coupon_code: str | None) -> None:
    """Payment intents need a positive amount, so a stay must leave something to charge."""
    if total > ZERO:
        return
    if coupon_code:
        raise CouponRejected(
            CouponRejectionReason.NOT_APPLICABLE,
            f"Coupon {normalize_code(coupon_code)} would leave nothing to pay for this stay",
        )
    raise ValidationError("Stay has no amount to charge")


async def price_stay(
    db: AsyncSession,
    prop: Property,
    guest_id: uuid.UUID,
    check_in: date,
    check_out: date,
    coupon_code: str | None = None,
) -> tuple[PriceBreakdown, Coupon | None]:
    """Quote a stay, letting the coupon guard decide the discount if a code is given."""
    undiscounted = quote(prop, check_in, check_out)
    if not coupon_code:
        return undiscounted, None

    coupon = await get_coupon_by_code(db, coupon_code)
    discount = await evaluate_coupon(db, coupon, guest_id, undiscounted.subtotal)
    return quote(prop, check_in, check_out, discount=discount), coupon


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


async def quote_stay(db: AsyncSession, guest: User, request: BookingRequest) -> PriceBreakdown:
    prop = await get_property(db, request.property_id)
    _validate_stay(prop, request.check_in, request.check_out, request.guest_count)
    breakdown, _ = await price_stay(db, prop, guest.id, request.check_in, request.check_out, request.coupon_code)
    return breakdown


async def create_booking(
    db: AsyncSession,
    gateway: StripePaymentGateway,
    guest: User,
    request: BookingRequest,
) -> BookingCreated:
    """Create a pending booking and open its payment intent.

    The property row lock makes check-then-insert atomic with respect to other
    bookings of the same property; the night claims are the storage-level
    backstop. The booking is committed before the gateway is called, so a
    gateway failure leaves it pending with no ``external_ref``.
    """
    prop = await get_property(db, request.property_id, for_update=True)
    _validate_stay(prop, request.check_in, request.check_out, request.guest_count)

    if not await is_available(db, prop.id, request.check_in, request.check_out):
        raise AvailabilityConflict()

    breakdown, coupon = await price_stay(
        db, prop, guest.id, request.check_in, request.check_out, request.coupon_code
    )
    _require_amount_due(breakdown.total, request.coupon_code)

    booking = Booking(
        id=uuid.uuid4(),
        property_id=prop.id,
        guest_id=guest.id,
        check_in=request.check_in,
        check_out=request.check_out,
        guest_count=request.guest_count,
        base_price=breakdown.base_price,
        cleaning_fee=breakdown.cleaning_fee,
        discount_amount=breakdown.discount,
        total=breakdown.total,
        coupon_id=coupon.id if coupon else None,
        status=BookingStatus.PENDING,
    )
    db.add(booking)
    await db.flush()

    db.add_all(claim_nights(booking))
    try:
        await db.flush()
    except IntegrityError as e:
        logger.info(
            "Night claim collision for property %s (%s to %s)",
            request.property_id,
            request.check_in,
            request.check_out,
        )
        raise AvailabilityConflict() from e

    if coupon is not None:
        await redeem_coupon(db, coupon, guest.id, booking.id, breakdown.discount)

    await db.commit()
    logger.info("Booking %s created pending for property %s (total %s)", booking.id, prop.id, booking.total)

    intent = await open_payment_intent(db, gateway, booking)
    return BookingCreated(booking=booking, breakdown=breakdown, payment_intent=intent)


async def open_payment_intent(db: AsyncSession, gateway: StripePaymentGateway, booking: Booking) -> PaymentIntent:
    """Open the booking's intent and record its reference (only if none is recorded yet)."""
    intent = await gateway.open_intent(booking)

    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.external_ref.is_(None))
        .values(external_ref=intent.external_ref, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(booking)
    return intent


async def retry_payment_intent(
    db: AsyncSession,
    gateway: StripePaymentGateway,
    guest: User,
    booking_id: uuid.UUID,
) -> PaymentIntent:
    """Open the payment intent for a pending booking whose first attempt failed.

    The gateway call carries the same idempotency key as the original attempt,
    so a request that reached Stripe before failing yields the same intent.
    """
    booking = await get_guest_booking(db, guest, booking_id)
    if booking.status is not BookingStatus.PENDING or booking.external_ref is not None:
        raise InvalidTransition(
            booking.id,
            booking.status.value,
            "open payment for",
            detail="Payment is already open or the booking is no longer pending",
        )
    logger.info("Retrying payment intent for booking %s", booking.id)
    return await open_payment_intent(db, gateway, booking)


async def cancel_guest_booking(
    db: AsyncSession,
    gateway: StripePaymentGateway,
    guest: User,
    booking_id: uuid.UUID,
) -> Booking:
    """Guest-initiated cancellation, legal only while pending.

    The payment intent is cancelled afterwards on a best-effort basis; if that
    fails, the gateway's own cancellation or failure event is absorbed later.
    """
    booking = await get_guest_booking(db, guest, booking_id)
    result = await cancel_booking(db, booking.id, TransitionSource.GUEST, reason="Cancelled by guest")
    await db.commit()

    if result is TransitionResult.APPLIED and booking.external_ref:
        try:
            await gateway.cancel_intent(booking.external_ref)
        except PaymentGatewayError:
            logger.warning("Could not cancel payment intent %s for booking %s", booking.external_ref, booking.id)
    return booking


async def apply_coupon_to_booking(
    db: AsyncSession,
    gateway: StripePaymentGateway,
    guest: User,
    code: str,
    booking_id: uuid.UUID,
) -> CouponApplication:
    """Apply a coupon to the guest's pending booking.

    Redemption, the new booking total and the payment intent amount change
    together: if the gateway update fails, the exception rolls back the
    redemption with everything else.
    """
    booking = await lock_booking(db, booking_id)
    if booking.guest_id != guest.id:
        raise NotFound("Booking not found")

    coupon = await get_coupon_by_code(db, code)
    if booking.status is not BookingStatus.PENDING or booking.coupon_id is not None:
        raise CouponRejected(
            CouponRejectionReason.NOT_APPLICABLE,
            "Coupons can only be applied once, to a pending booking",
        )

    discount = await evaluate_coupon(db, coupon, guest.id, booking.subtotal)
    _require_amount_due(booking.subtotal - discount, coupon.code)
    await redeem_coupon(db, coupon, guest.id, booking.id, discount)

    booking.coupon_id = coupon.id
    booking.discount_amount = discount
    booking.total = to_money(max(ZERO, booking.subtotal - discount))
    await db.flush()

    if booking.external_ref:
        await gateway.update_intent_amount(booking.external_ref, booking.total)

    return CouponApplication(
        code=coupon.code,
        discount_type=coupon.discount_type.value,
        discount_value=coupon.discount_value,
        discount_applied=discount,
        new_total=booking.total,
    )
