"""Booking state machine: pending -> confirmed | cancelled.

Each transition runs against a row-locked booking inside the caller's
transaction. Side effects of confirmation (payout, loyalty accrual) are
written in the same transaction, after the state check, so they happen
exactly once per booking.
"""

import enum
import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.database import utcnow
from staybook.errors import InvalidTransition, NotFound, ReconciliationAnomaly
from staybook.models.booking import BookedNight, Booking, BookingStatus
from staybook.models.property import Property
from staybook.services.loyalty import accrue_for_booking
from staybook.services.payouts import derive_payout

logger = logging.getLogger(__name__)


class TransitionResult(str, enum.Enum):
    APPLIED = "applied"
    NOOP = "noop"  # already in the requested terminal state


class TransitionSource(str, enum.Enum):
    GUEST = "guest"
    GATEWAY = "gateway"


async def lock_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    """Load a booking with a row lock, refreshing any stale copy in the session."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


async def find_booking_id_by_ref(db: AsyncSession, external_ref: str | None) -> uuid.UUID | None:
    if not external_ref:
        return None
    result = await db.execute(select(Booking.id).where(Booking.external_ref == external_ref))
    return result.scalar_one_or_none()


async def confirm_booking(db: AsyncSession, booking_id: uuid.UUID) -> TransitionResult:
    """Confirm a pending booking after verified payment.

    Confirming a confirmed booking is a no-op; confirming a cancelled one is a
    reconciliation anomaly.
    """
    booking = await lock_booking(db, booking_id)

    if booking.status is BookingStatus.CONFIRMED:
        return TransitionResult.NOOP
    if booking.status is BookingStatus.CANCELLED:
        raise ReconciliationAnomaly(
            booking.id,
            booking.status.value,
            "confirm",
            detail=f"Payment succeeded for cancelled booking {booking.id}",
        )

    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = utcnow()
    await db.flush()

    host_result = await db.execute(select(Property.host_id).where(Property.id == booking.property_id))
    await derive_payout(db, booking, host_result.scalar_one())
    await accrue_for_booking(db, booking)

    logger.info("Booking %s confirmed (total %s)", booking.id, booking.total)
    return TransitionResult.APPLIED


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    source: TransitionSource,
    reason: str | None = None,
) -> TransitionResult:
    """Cancel a pending booking and release its nights.

    A confirmed booking can't be cancelled here: for a guest that's an invalid
    request, for a payment event it's a reconciliation anomaly.
    """
    booking = await lock_booking(db, booking_id)

    if booking.status is BookingStatus.CANCELLED:
        return TransitionResult.NOOP
    if booking.status is BookingStatus.CONFIRMED:
        if source is TransitionSource.GATEWAY:
            raise ReconciliationAnomaly(
                booking.id,
                booking.status.value,
                "cancel",
                detail=f"Payment failure reported for confirmed booking {booking.id}",
            )
        raise InvalidTransition(
            booking.id,
            booking.status.value,
            "cancel",
            detail="Only pending bookings can be cancelled",
        )

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = reason
    await db.execute(delete(BookedNight).where(BookedNight.booking_id == booking.id))
    await db.flush()

    logger.info("Booking %s cancelled by %s (%s)", booking.id, source.value, reason or "no reason given")
    return TransitionResult.APPLIED
