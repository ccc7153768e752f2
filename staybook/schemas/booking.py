"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from staybook.models.booking import BookingStatus

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for creating (or quoting) a booking."""

    property_id: uuid.UUID
    check_in: date
    check_out: date
    guest_count: int = Field(1, ge=1, le=20)
    coupon_code: str | None = Field(None, min_length=1, max_length=50)

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreate":
        """Validate that check_out is strictly after check_in."""
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PriceBreakdownResponse(BaseModel):
    nights: int
    base_price: Decimal
    cleaning_fee: Decimal
    discount: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class BookingCreatedResponse(BaseModel):
    """Returned once the booking is pending and its payment intent is open."""

    booking_id: uuid.UUID
    status: BookingStatus
    price_breakdown: PriceBreakdownResponse
    payment_intent_ref: str
    client_secret: str | None = None


class PaymentIntentResponse(BaseModel):
    booking_id: uuid.UUID
    payment_intent_ref: str
    client_secret: str | None = None


class BookingResponse(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    guest_id: uuid.UUID
    check_in: date
    check_out: date
    guest_count: int
    base_price: Decimal
    cleaning_fee: Decimal
    discount_amount: Decimal
    total: Decimal
    status: BookingStatus
    external_ref: str | None = None
    awaiting_payment: bool
    cancellation_reason: str | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
