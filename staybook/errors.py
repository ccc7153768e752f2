"""Error taxonomy for the booking core.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API renders it with, so callers dispatch on the class (or ``code``) and never
on message text.
"""

import enum
import uuid

from fastapi import Request, status
from fastapi.responses import JSONResponse


class StayBookError(Exception):
    """Base class for errors surfaced to API callers."""

    code: str = "internal_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(StayBookError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationFailure(StayBookError):
    code = "authentication_failed"
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(StayBookError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(StayBookError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AvailabilityConflict(StayBookError):
    code = "availability_conflict"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "Property is not available for the selected dates") -> None:
        super().__init__(detail)


class InvalidTransition(StayBookError):
    """A booking transition that is not legal from the booking's current state."""

    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, booking_id: uuid.UUID, current: str, attempted: str, detail: str | None = None) -> None:
        super().__init__(detail or f"Cannot {attempted} booking {booking_id} in state {current}")
        self.booking_id = booking_id
        self.current = current
        self.attempted = attempted


class ReconciliationAnomaly(InvalidTransition):
    """A payment event implies a transition out of the opposite terminal state."""

    code = "reconciliation_anomaly"


class CouponRejectionReason(str, enum.Enum):
    INACTIVE = "coupon_inactive"
    EXHAUSTED = "coupon_exhausted"
    ALREADY_REDEEMED = "coupon_already_redeemed"
    MINIMUM_NOT_MET = "coupon_minimum_not_met"
    NOT_APPLICABLE = "coupon_not_applicable"


class CouponRejected(StayBookError):
    status_code = 422

    def __init__(self, reason: CouponRejectionReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.code = reason.value


class InsufficientPoints(StayBookError):
    code = "insufficient_points"
    status_code = 422


class PaymentGatewayError(StayBookError):
    """Payment intent could not be created or updated."""

    code = "payment_gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, detail: str, booking_id: uuid.UUID | None = None) -> None:
        super().__init__(detail)
        self.booking_id = booking_id


async def staybook_error_handler(request: Request, exc: StayBookError) -> JSONResponse:
    body: dict[str, str] = {"code": exc.code, "detail": exc.detail}
    if isinstance(exc, PaymentGatewayError) and exc.booking_id is not None:
        body["booking_id"] = str(exc.booking_id)
    return JSONResponse(status_code=exc.status_code, content=body)
