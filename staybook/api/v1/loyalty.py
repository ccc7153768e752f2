"""Loyalty, review and payout endpoints for the current user."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import Capability, get_db, require_capability
from staybook.models.loyalty import LoyaltyTransaction
from staybook.models.payout import Payout
from staybook.models.user import User
from staybook.schemas.loyalty import (
    LoyaltySummary,
    LoyaltyTransactionResponse,
    PayoutResponse,
    PointsRedeem,
    ReviewCreate,
    ReviewCreatedResponse,
)
from staybook.services.loyalty import get_balance, loyalty_tier, recent_transactions, redeem_points
from staybook.services.payouts import list_payouts
from staybook.services.reviews import submit_review

router = APIRouter(prefix="/api/v1", tags=["loyalty"])


@router.get("/loyalty", response_model=LoyaltySummary, summary="Loyalty balance and recent activity")
async def get_loyalty(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.USE_LOYALTY)),
) -> LoyaltySummary:
    balance = await get_balance(db, current_user.id)
    transactions = await recent_transactions(db, current_user.id)
    return LoyaltySummary(
        balance=balance,
        tier=loyalty_tier(balance),
        recent_transactions=[LoyaltyTransactionResponse.model_validate(t) for t in transactions],
    )


@router.post(
    "/loyalty/redeem",
    response_model=LoyaltyTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Spend loyalty points",
)
async def redeem(
    body: PointsRedeem,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.USE_LOYALTY)),
) -> LoyaltyTransaction:
    return await redeem_points(db, current_user.id, body.points)


@router.post(
    "/reviews",
    response_model=ReviewCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review a confirmed stay",
)
async def create_review(
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.WRITE_REVIEW)),
) -> ReviewCreatedResponse:
    review, entry = await submit_review(db, current_user, body.booking_id, body.rating, body.comment)
    return ReviewCreatedResponse(
        review_id=review.id,
        booking_id=review.booking_id,
        rating=review.rating,
        points_earned=entry.points_earned,
    )


@router.get("/payouts", response_model=list[PayoutResponse], summary="Payouts owed to the current host")
async def get_payouts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.VIEW_PAYOUTS)),
) -> list[Payout]:
    return await list_payouts(db, current_user.id)
