"""Booking model and per-night availability claims."""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from staybook.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not BookingStatus.PENDING


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation of a property for a half-open date range by a guest.

    Rows are never deleted; cancellation is a status write.
    """

    __tablename__ = "bookings"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    cleaning_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    coupon_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("coupons.id"), nullable=True)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    # Set once when the payment intent is opened, never changed afterwards.
    external_ref: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("ix_bookings_property_dates", "property_id", "check_in", "check_out"),)

    @property
    def nights(self) -> int:
        return max(1, (self.check_out - self.check_in).days)

    @property
    def subtotal(self) -> Decimal:
        """Price before any discount."""
        return self.base_price + self.cleaning_fee

    @property
    def awaiting_payment(self) -> bool:
        """Pending with an open payment intent (as opposed to a failed intent creation)."""
        return self.status is BookingStatus.PENDING and self.external_ref is not None

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, property_id={self.property_id}, guest_id={self.guest_id}, "
            f"status={self.status.value})>"
        )


class BookedNight(Base):
    """One claimed night of a property.

    The (property_id, night) primary key makes the storage layer reject two
    live bookings holding the same night, whatever the application checked.
    """

    __tablename__ = "booked_nights"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        primary_key=True,
    )
    night: Mapped[date] = mapped_column(Date, primary_key=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )