"""Bookings API router.

Ownership rule: a guest can only access their own bookings; other bookings
are reported as not found.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import Capability, get_db, get_gateway, require_capability
from staybook.models.booking import Booking
from staybook.models.user import User
from staybook.payments.gateway import StripePaymentGateway
from staybook.schemas.booking import (
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    PaymentIntentResponse,
    PriceBreakdownResponse,
)
from staybook.services.booking_service import (
    BookingRequest,
    cancel_guest_booking,
    create_booking,
    get_guest_booking,
    quote_stay,
    retry_payment_intent,
)
from staybook.services.pricing import PriceBreakdown

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


def _to_request(body: BookingCreate) -> BookingRequest:
    return BookingRequest(
        property_id=body.property_id,
        check_in=body.check_in,
        check_out=body.check_out,
        guest_count=body.guest_count,
        coupon_code=body.coupon_code,
    )


@router.post(
    "",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a stay and open its payment intent",
)
async def create_booking_endpoint(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_gateway),
    current_user: User = Depends(require_capability(Capability.BOOK_STAY)),
) -> BookingCreatedResponse:
    """Create a pending booking.

    Returns 409 when the dates are taken, 404 for an unknown property and
    502 when the payment intent could not be opened (the booking then stays
    pending without a payment reference).
    """
    created = await create_booking(db, gateway, current_user, _to_request(body))
    return BookingCreatedResponse(
        booking_id=created.booking.id,
        status=created.booking.status,
        price_breakdown=PriceBreakdownResponse.model_validate(created.breakdown),
        payment_intent_ref=created.payment_intent.external_ref,
        client_secret=created.payment_intent.client_secret,
    )


@router.post(
    "/quote",
    response_model=PriceBreakdownResponse,
    summary="Price a stay without reserving it",
)
async def quote_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.BOOK_STAY)),
) -> PriceBreakdown:
    """Coupons are evaluated for the current user but not redeemed."""
    return await quote_stay(db, current_user, _to_request(body))


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get one of the current user's bookings",
)
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_OWN_BOOKINGS)),
) -> Booking:
    return await get_guest_booking(db, current_user, booking_id)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a pending booking",
)
async def cancel_booking_endpoint(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_gateway),
    current_user: User = Depends(require_capability(Capability.MANAGE_OWN_BOOKINGS)),
) -> Booking:
    """Only pending bookings can be cancelled; a confirmed booking returns 409."""
    return await cancel_guest_booking(db, gateway, current_user, booking_id)


@router.post(
    "/{booking_id}/payment-intent",
    response_model=PaymentIntentResponse,
    summary="Open the payment intent for a pending booking",
)
async def retry_payment_intent_endpoint(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_gateway),
    current_user: User = Depends(require_capability(Capability.MANAGE_OWN_BOOKINGS)),
) -> PaymentIntentResponse:
    """Recovers a booking whose creation returned 502.

    Returns 409 when the booking already has a payment reference or is no
    longer pending, and 502 again if the gateway is still failing.
    """
    intent = await retry_payment_intent(db, gateway, current_user, booking_id)
    return PaymentIntentResponse(
        booking_id=booking_id,
        payment_intent_ref=intent.external_ref,
        client_secret=intent.client_secret,
    )
