"""Host payout model."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from staybook.database import Base, UUIDPrimaryKeyMixin, utcnow


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class Payout(UUIDPrimaryKeyMixin, Base):
    """Amount owed to a host for one confirmed booking, fixed at confirmation time."""

    __tablename__ = "payouts"

    host_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    withheld_tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(
        Enum(PayoutStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=PayoutStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Payout(booking_id={self.booking_id}, net={self.net_amount}, status={self.status.value})>"
