"""Host payout derivation."""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.config import settings
from staybook.models.booking import Booking
from staybook.models.payout import Payout
from staybook.services.pricing import to_money

logger = logging.getLogger(__name__)


def compute_payout_amounts(
    total: Decimal,
    host_share_rate: Decimal | None = None,
    tax_withholding_rate: Decimal | None = None,
) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(gross, withheld, net)`` for a booking total."""
    share = settings.host_share_rate if host_share_rate is None else host_share_rate
    tax_rate = settings.tax_withholding_rate if tax_withholding_rate is None else tax_withholding_rate
    gross = to_money(total * share)
    withheld = to_money(gross * tax_rate)
    return gross, withheld, gross - withheld


async def derive_payout(db: AsyncSession, booking: Booking, host_id: uuid.UUID) -> Payout:
    """Create the booking's payout. Called once, on confirmation; never recomputed."""
    gross, withheld, net = compute_payout_amounts(booking.total)
    payout = Payout(
        host_id=host_id,
        booking_id=booking.id,
        gross_amount=gross,
        withheld_tax=withheld,
        net_amount=net,
    )
    db.add(payout)
    await db.flush()
    logger.info("Created payout for booking %s: host %s net %s (withheld %s)", booking.id, host_id, net, withheld)
    return payout


async def list_payouts(db: AsyncSession, host_id: uuid.UUID) -> list[Payout]:
    result = await db.execute(
        select(Payout).where(Payout.host_id == host_id).order_by(Payout.created_at.desc())
    )
    return list(result.scalars().all())
