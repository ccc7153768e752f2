"""Coupon and Redemption models."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from staybook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A discount code. ``code`` is stored upper-case and matched case-insensitively."""

    __tablename__ = "coupons"

    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    # Percent (0-100] for percentage coupons, major currency units for fixed ones.
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    max_uses_per_user: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    min_booking_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Usage statistics, only ever changed by atomic UPDATE statements.
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code!r}, type={self.discount_type.value}, used={self.used_count}/{self.max_uses})>"


class Redemption(UUIDPrimaryKeyMixin, Base):
    """A user applying a coupon once. Immutable after insert."""

    __tablename__ = "coupon_redemptions"

    coupon_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
    )
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (UniqueConstraint("coupon_id", "user_id", name="uq_coupon_redemptions_coupon_user"),)
