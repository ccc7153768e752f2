"""Pydantic v2 schemas for loyalty, review and payout endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from staybook.models.loyalty import LoyaltyReason
from staybook.models.payout import PayoutStatus


class LoyaltyTransactionResponse(BaseModel):
    id: uuid.UUID
    points_earned: int
    points_redeemed: int
    booking_id: uuid.UUID | None = None
    review_id: uuid.UUID | None = None
    reason: LoyaltyReason
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoyaltySummary(BaseModel):
    balance: int
    tier: str
    recent_transactions: list[LoyaltyTransactionResponse]


class PointsRedeem(BaseModel):
    points: int = Field(..., ge=1)


class ReviewCreate(BaseModel):
    booking_id: uuid.UUID
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=1000)


class ReviewCreatedResponse(BaseModel):
    review_id: uuid.UUID
    booking_id: uuid.UUID
    rating: int
    points_earned: int


class PayoutResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    gross_amount: Decimal
    withheld_tax: Decimal
    net_amount: Decimal
    status: PayoutStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
