"""Availability checks over the half-open [check_in, check_out) interval."""

import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.models.booking import BookedNight, Booking, BookingStatus

logger = logging.getLogger(__name__)

# Statuses that hold their dates. Cancelled bookings never block.
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def nights_between(check_in: date, check_out: date) -> list[date]:
    """Every night a stay occupies: check_in up to, not including, check_out."""
    return [check_in + timedelta(days=offset) for offset in range((check_out - check_in).days)]


def overlaps(existing_in: date, existing_out: date, new_in: date, new_out: date) -> bool:
    """Half-open overlap test: a checkout on day N does not clash with a check-in on day N."""
    return existing_in < new_out and existing_out > new_in


async def find_conflicting_booking(
    db: AsyncSession,
    property_id: uuid.UUID,
    check_in: date,
    check_out: date,
) -> Booking | None:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_available(
    db: AsyncSession,
    property_id: uuid.UUID,
    check_in: date,
    check_out: date,
) -> bool:
    """Return True if no pending or confirmed booking overlaps the range.

    Fails closed: if the lookup itself errors, the dates are reported as
    unavailable.
    """
    try:
        conflict = await find_conflicting_booking(db, property_id, check_in, check_out)
    except SQLAlchemyError:
        logger.exception("Availability check failed for property %s (%s to %s)", property_id, check_in, check_out)
        return False
    return conflict is None


def claim_nights(booking: Booking) -> list[BookedNight]:
    """Night claim rows for a booking; inserting them enforces the availability invariant."""
    return [
        BookedNight(property_id=booking.property_id, night=night, booking_id=booking.id)
        for night in nights_between(booking.check_in, booking.check_out)
    ]
