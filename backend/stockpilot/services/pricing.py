# Overview: Pure order pricing; subtotal, clamped discount, shipping and profit in integer cents.

"""
Pricing calculator.

All amounts are integer cents. Percentage discounts are rounded half-up to the
nearest cent. The discount is clamped to [0, subtotal] so a total can never
drop below the shipping fee, and a negative shipping fee counts as zero.

These functions never touch the database and never mutate their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


@dataclass(frozen=True)
class PricedLine:
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int = 0


@dataclass(frozen=True)
class Discount:
    """discount_type None means no discount; value is a percent or cents."""
    discount_type: Optional[str] = None
    value: Optional[int | float | Decimal] = None


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_amount_cents: int
    shipping_fee_cents: int
    total_cents: int


def compute_subtotal(lines: Iterable[PricedLine]) -> int:
    return sum(line.quantity * line.unit_price_cents for line in lines)


def compute_discount(subtotal_cents: int, discount: Optional[Discount]) -> int:
    if discount is None or discount.discount_type is None or discount.value is None:
        return 0

    if discount.discount_type == DISCOUNT_PERCENTAGE:
        raw = (Decimal(subtotal_cents) * Decimal(str(discount.value)) / Decimal(100)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        amount = int(raw)
    elif discount.discount_type == DISCOUNT_FIXED:
        amount = int(Decimal(str(discount.value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    else:
        raise ValueError(f"Unknown discount type: {discount.discount_type}")

    return min(max(amount, 0), subtotal_cents)


def compute_totals(
    lines: Iterable[PricedLine],
    discount: Optional[Discount] = None,
    shipping_fee_cents: int = 0,
) -> OrderTotals:
    lines = list(lines)
    subtotal = compute_subtotal(lines)
    discount_amount = compute_discount(subtotal, discount)
    shipping = max(int(shipping_fee_cents or 0), 0)
    return OrderTotals(
        subtotal_cents=subtotal,
        discount_amount_cents=discount_amount,
        shipping_fee_cents=shipping,
        total_cents=subtotal - discount_amount + shipping,
    )


def compute_profit(total_cents: int, lines: Iterable[PricedLine]) -> tuple[int, int]:
    """Returns (cost_of_goods_cents, profit_cents)."""
    cost_of_goods = sum(line.quantity * line.unit_cost_cents for line in lines)
    return cost_of_goods, total_cents - cost_of_goods
