"""Price & discount calculation. All amounts are Decimal major currency units."""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from staybook.models.property import Property

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal | int | str) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def count_nights(check_in: date, check_out: date) -> int:
    return max(1, (check_out - check_in).days)


@dataclass(frozen=True)
class PriceBreakdown:
    nights: int
    base_price: Decimal
    cleaning_fee: Decimal
    discount: Decimal
    total: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.base_price + self.cleaning_fee


def quote(
    property: Property,
    check_in: date,
    check_out: date,
    discount: Decimal = ZERO,
) -> PriceBreakdown:
    """Price a stay.

    ``discount`` is whatever the coupon guard granted; the total is floored at
    zero so a large fixed coupon can never produce a negative charge.
    """
    nights = count_nights(check_in, check_out)
    base_price = to_money(property.nightly_rate * nights)
    cleaning_fee = to_money(property.cleaning_fee or ZERO)
    discount = to_money(discount)
    total = max(ZERO, base_price + cleaning_fee - discount)
    return PriceBreakdown(
        nights=nights,
        base_price=base_price,
        cleaning_fee=cleaning_fee,
        discount=discount,
        total=to_money(total),
    )
