"""Pydantic v2 schemas for coupon endpoints."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from staybook.models.coupon import DiscountType


class CouponApply(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    booking_id: uuid.UUID


class CouponApplyResponse(BaseModel):
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_applied: Decimal
    new_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    valid_from: datetime
    valid_until: datetime
    max_uses: int | None = Field(None, ge=1)
    max_uses_per_user: int = Field(1, ge=1, le=1)
    min_booking_value: Decimal | None = Field(None, ge=0)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        """Store timestamps as naive UTC."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: datetime
    valid_until: datetime
    max_uses: int | None = None
    max_uses_per_user: int
    min_booking_value: Decimal | None = None
    is_active: bool
    used_count: int
    total_discount: Decimal

    model_config = ConfigDict(from_attributes=True)
