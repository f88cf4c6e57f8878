"""
Pricing calculator tests.

Verifies:
- Subtotal is the sum of quantity x unit price
- Percentage discounts round half-up to the cent
- Discounts are clamped to [0, subtotal]
- Negative shipping counts as zero
- Profit is total minus cost of goods
"""

from decimal import Decimal

import pytest

from stockpilot.services.pricing import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    Discount,
    PricedLine,
    compute_discount,
    compute_profit,
    compute_subtotal,
    compute_totals,
)


LINES = [PricedLine(quantity=2, unit_price_cents=1500, unit_cost_cents=600), PricedLine(quantity=1, unit_price_cents=999, unit_cost_cents=500)]


class TestSubtotal:
    def test_sums_lines(self):
        assert compute_subtotal(LINES) == 3999

    def test_empty_order(self):
        assert compute_subtotal([]) == 0

    def test_line_order_does_not_matter(self):
        assert compute_subtotal(list(reversed(LINES))) == compute_subtotal(LINES)


class TestDiscount:
    def test_no_discount(self):
        assert compute_discount(3999, None) == 0
        assert compute_discount(3999, Discount()) == 0

    def test_percentage_rounds_half_up(self):
        # 10% of 3999 = 399.9 -> 400
        assert compute_discount(3999, Discount(DISCOUNT_PERCENTAGE, 10)) == 400
        # 50% of 1001 = 500.5 -> 501
        assert compute_discount(1001, Discount(DISCOUNT_PERCENTAGE, Decimal("50"))) == 501

    def test_fractional_percentage(self):
        # 12.5% of 2000 = 250
        assert compute_discount(2000, Discount(DISCOUNT_PERCENTAGE, Decimal("12.5"))) == 250

    def test_fixed(self):
        assert compute_discount(3999, Discount(DISCOUNT_FIXED, 500)) == 500

    def test_fixed_larger_than_subtotal_is_clamped(self):
        assert compute_discount(3999, Discount(DISCOUNT_FIXED, 10_000)) == 3999

    def test_percentage_over_hundred_is_clamped(self):
        assert compute_discount(1000, Discount(DISCOUNT_PERCENTAGE, 150)) == 1000

    def test_negative_discount_is_zero(self):
        assert compute_discount(1000, Discount(DISCOUNT_FIXED, -300)) == 0
        assert compute_discount(1000, Discount(DISCOUNT_PERCENTAGE, -10)) == 0

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            compute_discount(1000, Discount("bogus", 5))


class TestTotals:
    def test_total_with_discount_and_shipping(self):
        totals = compute_totals(LINES, Discount(DISCOUNT_PERCENTAGE, 10), 250)
        assert totals.subtotal_cents == 3999
        assert totals.discount_amount_cents == 400
        assert totals.shipping_fee_cents == 250
        assert totals.total_cents == 3999 - 400 + 250

    def test_total_never_below_shipping(self):
        totals = compute_totals(LINES, Discount(DISCOUNT_FIXED, 99_999), 300)
        assert totals.total_cents == 300

    def test_negative_shipping_counts_as_zero(self):
        totals = compute_totals(LINES, None, -500)
        assert totals.shipping_fee_cents == 0
        assert totals.total_cents == 3999

    def test_inputs_not_mutated(self):
        lines = list(LINES)
        compute_totals(lines, Discount(DISCOUNT_FIXED, 100), 0)
        assert lines == LINES


class TestProfit:
    def test_profit_is_total_minus_cost(self):
        cogs, profit = compute_profit(3599, LINES)
        assert cogs == 2 * 600 + 500
        assert profit == 3599 - 1700

    def test_profit_can_be_negative(self):
        cogs, profit = compute_profit(100, LINES)
        assert profit == 100 - cogs
        assert profit < 0


class TestScenario:
    def test_two_lines_ten_percent_with_shipping(self):
        lines = [PricedLine(quantity=2, unit_price_cents=10_000), PricedLine(quantity=1, unit_price_cents=5_000)]
        totals = compute_totals(lines, Discount(DISCOUNT_PERCENTAGE, 10), 2_000)
        assert (totals.subtotal_cents, totals.discount_amount_cents, totals.total_cents) == (25_000, 2_500, 24_500)

    def test_repeatable(self):
        discount = Discount(DISCOUNT_PERCENTAGE, Decimal("7.5"))
        assert compute_totals(LINES, discount, 120) == compute_totals(LINES, discount, 120)
