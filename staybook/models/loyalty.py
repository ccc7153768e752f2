"""Loyalty ledger model: append-only points history."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from staybook.database import Base, UUIDPrimaryKeyMixin, utcnow


class LoyaltyReason(str, enum.Enum):
    BOOKING = "booking"
    REVIEW = "review"
    REDEMPTION = "redemption"


class LoyaltyTransaction(UUIDPrimaryKeyMixin, Base):
    """One ledger entry. A user's balance is the sum over their entries."""

    __tablename__ = "loyalty_transactions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_redeemed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("bookings.id"), nullable=True)
    review_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("reviews.id"), nullable=True)
    reason: Mapped[LoyaltyReason] = mapped_column(
        Enum(LoyaltyReason, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "reason", name="uq_loyalty_booking_reason"),
        UniqueConstraint("review_id", name="uq_loyalty_review"),
    )

    def __repr__(self) -> str:
        return (
            f"<LoyaltyTransaction(user_id={self.user_id}, +{self.points_earned}/-{self.points_redeemed}, "
            f"reason={self.reason.value})>"
        )
