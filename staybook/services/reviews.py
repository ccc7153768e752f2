"""Review submission: the trigger for review loyalty accruals."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.errors import NotFound, ValidationError
from staybook.models.booking import Booking, BookingStatus
from staybook.models.loyalty import LoyaltyTransaction
from staybook.models.review import Review
from staybook.models.user import User
from staybook.services.loyalty import accrue_for_review

logger = logging.getLogger(__name__)


async def submit_review(
    db: AsyncSession,
    author: User,
    booking_id: uuid.UUID,
    rating: int,
    comment: str | None = None,
) -> tuple[Review, LoyaltyTransaction]:
    """Record a review of the author's confirmed booking and award its points."""
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")

    result = await db.execute(
        select(Booking).where(
            Booking.id == booking_id,
            Booking.guest_id == author.id,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Booking not found or not eligible for review")

    review = Review(booking_id=booking_id, author_id=author.id, rating=rating, comment=comment)
    db.add(review)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ValidationError("This booking has already been reviewed") from e

    entry = await accrue_for_review(db, review)
    logger.info("Review %s submitted for booking %s (rating %d)", review.id, booking_id, rating)
    return review, entry
