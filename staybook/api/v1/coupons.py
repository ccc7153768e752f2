"""Coupons API router: apply to a booking, look up, and admin creation."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import Capability, get_db, get_gateway, require_capability
from staybook.models.coupon import Coupon
from staybook.models.user import User
from staybook.payments.gateway import StripePaymentGateway
from staybook.schemas.coupon import CouponApply, CouponApplyResponse, CouponCreate, CouponResponse
from staybook.services.booking_service import CouponApplication, apply_coupon_to_booking
from staybook.services.coupons import create_coupon, get_coupon_by_code

router = APIRouter(prefix="/api/v1/coupons", tags=["coupons"])


@router.post(
    "/apply",
    response_model=CouponApplyResponse,
    summary="Apply a coupon to a pending booking",
)
async def apply_coupon(
    body: CouponApply,
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_gateway),
    current_user: User = Depends(require_capability(Capability.APPLY_COUPON)),
) -> CouponApplication:
    """Rejections return 422 with one of the ``coupon_*`` codes."""
    return await apply_coupon_to_booking(db, gateway, current_user, body.code, body.booking_id)


@router.post(
    "",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a coupon (admin)",
)
async def create_coupon_endpoint(
    body: CouponCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.MANAGE_COUPONS)),
) -> Coupon:
    return await create_coupon(db, **body.model_dump())


@router.get(
    "/{code}",
    response_model=CouponResponse,
    summary="Look up a coupon by code",
)
async def get_coupon(code: str, db: AsyncSession = Depends(get_db)) -> Coupon:
    return await get_coupon_by_code(db, code)
