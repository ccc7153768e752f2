"""Tests for stay pricing, discounts and payout arithmetic."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from staybook.models.coupon import Coupon, DiscountType
from staybook.services.coupons import compute_discount
from staybook.services.payouts import compute_payout_amounts
from staybook.services.pricing import count_nights, quote, to_money


def _property(rate: str = "15000", cleaning: str = "2000") -> SimpleNamespace:
    return SimpleNamespace(nightly_rate=Decimal(rate), cleaning_fee=Decimal(cleaning))


def _coupon(discount_type: DiscountType, value: str) -> Coupon:
    return Coupon(code="TEST", name="Test", discount_type=discount_type, discount_value=Decimal(value))


class TestQuote:
    """Tests for quote()."""

    def test_three_nights_with_cleaning_fee(self) -> None:
        breakdown = quote(_property(), date(2026, 3, 1), date(2026, 3, 4))
        assert breakdown.nights == 3
        assert breakdown.base_price == Decimal("45000.00")
        assert breakdown.cleaning_fee == Decimal("2000.00")
        assert breakdown.discount == Decimal("0.00")
        assert breakdown.total == Decimal("47000.00")
        assert breakdown.subtotal == Decimal("47000.00")

    def test_discount_is_subtracted(self) -> None:
        breakdown = quote(_property(), date(2026, 3, 1), date(2026, 3, 4), discount=Decimal("4700"))
        assert breakdown.total == Decimal("42300.00")

    def test_total_never_negative(self) -> None:
        breakdown = quote(_property("1000", "0"), date(2026, 3, 1), date(2026, 3, 2), discount=Decimal("5000"))
        assert breakdown.total == Decimal("0.00")

    def test_same_day_counts_as_one_night(self) -> None:
        assert count_nights(date(2026, 3, 1), date(2026, 3, 1)) == 1

    def test_missing_cleaning_fee_is_zero(self) -> None:
        prop = SimpleNamespace(nightly_rate=Decimal("100"), cleaning_fee=None)
        assert quote(prop, date(2026, 3, 1), date(2026, 3, 3)).total == Decimal("200.00")

    def test_rounds_half_up_to_cents(self) -> None:
        assert to_money(Decimal("10.005")) == Decimal("10.01")
        assert to_money(Decimal("10.004")) == Decimal("10.00")


class TestComputeDiscount:
    """Tests for compute_discount()."""

    def test_percentage(self) -> None:
        assert compute_discount(_coupon(DiscountType.PERCENTAGE, "10"), Decimal("47000")) == Decimal("4700.00")

    def test_fixed(self) -> None:
        assert compute_discount(_coupon(DiscountType.FIXED, "500"), Decimal("3000")) == Decimal("500.00")

    def test_fixed_capped_at_subtotal(self) -> None:
        assert compute_discount(_coupon(DiscountType.FIXED, "5000"), Decimal("3000")) == Decimal("3000.00")

    def test_percentage_rounds_to_cents(self) -> None:
        assert compute_discount(_coupon(DiscountType.PERCENTAGE, "15"), Decimal("333.33")) == Decimal("50.00")


class TestPayoutAmounts:
    """Tests for compute_payout_amounts()."""

    def test_default_rates(self) -> None:
        gross, withheld, net = compute_payout_amounts(Decimal("47000.00"))
        assert gross == Decimal("39950.00")
        assert withheld == Decimal("1997.50")
        assert net == Decimal("37952.50")

    def test_net_is_gross_minus_withheld(self) -> None:
        gross, withheld, net = compute_payout_amounts(Decimal("1234.57"))
        assert net == gross - withheld

    @pytest.mark.parametrize(
        ("share", "tax", "expected_net"),
        [
            (Decimal("1"), Decimal("0"), Decimal("1000.00")),
            (Decimal("0.80"), Decimal("0.10"), Decimal("720.00")),
        ],
    )
    def test_custom_rates(self, share: Decimal, tax: Decimal, expected_net: Decimal) -> None:
        _, _, net = compute_payout_amounts(Decimal("1000"), share, tax)
        assert net == expected_net

    def test_zero_total(self) -> None:
        assert compute_payout_amounts(Decimal("0")) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))
