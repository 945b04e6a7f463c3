"""
Pricing & discount calculation.

WHY: Every document (sale, quotation, layby) prices its cart the same way,
and a pure function with no database access is the only way to guarantee
that a converted quotation or a recreated one is priced identically.

Money is integer cents, percentages are basis points (1500 = 15%).
Rounding is half-up to the cent at each step that produces a stored amount:
line discount, order discount, tax.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..errors import ValidationError
from ..models.reference import TAX_MODE_INCLUSIVE, TAX_MODES

BPS_SCALE = 10_000
MAX_DISCOUNT_BPS = 10_000


@dataclass(frozen=True)
class PricingLine:
    unit_price_cents: int
    quantity: int
    discount_bps: int = 0


@dataclass(frozen=True)
class PricedLine:
    unit_price_cents: int
    quantity: int
    discount_bps: int
    line_subtotal_cents: int
    discount_amount_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class PricingResult:
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    discount_bps: int
    discount_amount_cents: int
    discounted_subtotal_cents: int
    tax_mode: str
    tax_rate_bps: int
    tax_amount_cents: int
    total_cents: int


def round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, bps: int) -> int:
    return round_cents(Decimal(amount_cents) * Decimal(bps) / Decimal(BPS_SCALE))


def _check_discount(bps: int, label: str) -> None:
    if bps < 0 or bps > MAX_DISCOUNT_BPS:
        raise ValidationError(
            f"{label} discount must be between 0% and 100%",
            details={"discount_bps": bps},
        )


def price_line(line: PricingLine) -> PricedLine:
    if line.quantity <= 0:
        raise ValidationError("Quantity must be greater than zero", details={"quantity": line.quantity})
    if line.unit_price_cents < 0:
        raise ValidationError("Unit price cannot be negative", details={"unit_price_cents": line.unit_price_cents})
    _check_discount(line.discount_bps, "Line")

    subtotal = line.unit_price_cents * line.quantity
    discount = percent_of(subtotal, line.discount_bps)
    return PricedLine(
        unit_price_cents=line.unit_price_cents,
        quantity=line.quantity,
        discount_bps=line.discount_bps,
        line_subtotal_cents=subtotal,
        discount_amount_cents=discount,
        line_total_cents=subtotal - discount,
    )


def calculate_tax(discounted_subtotal_cents: int, *, tax_mode: str, tax_rate_bps: int) -> tuple[int, int]:
    """
    Return (tax_cents, total_cents) for a discounted subtotal.

    inclusive: tax is extracted from the amount, total unchanged.
    exclusive: tax is added on top.
    """
    if tax_mode not in TAX_MODES:
        raise ValidationError(f"Invalid tax mode: {tax_mode}")
    # A rate of -100% would divide by zero when extracting inclusive tax
    if tax_rate_bps < 0:
        raise ValidationError("Tax rate cannot be negative", details={"tax_rate_bps": tax_rate_bps})

    amount = Decimal(discounted_subtotal_cents)
    if tax_mode == TAX_MODE_INCLUSIVE:
        net = round_cents(amount * BPS_SCALE / (BPS_SCALE + tax_rate_bps))
        return discounted_subtotal_cents - net, discounted_subtotal_cents

    tax = percent_of(discounted_subtotal_cents, tax_rate_bps)
    return tax, discounted_subtotal_cents + tax


def calculate_totals(
    lines: Iterable[PricingLine],
    *,
    tax_mode: str,
    tax_rate_bps: int,
    order_discount_bps: int = 0,
) -> PricingResult:
    """
    Price a cart.

    Args:
        lines: (unit price, quantity, line discount) per line
        tax_mode: "inclusive" or "exclusive"
        tax_rate_bps: effective branch tax rate
        order_discount_bps: order-level discount applied after line discounts

    Returns:
        PricingResult with per-line and order totals

    Raises:
        ValidationError: empty cart, non-positive quantity, discount outside
            0-100%, negative tax rate or unknown tax mode
    """
    priced = tuple(price_line(line) for line in lines)
    if not priced:
        raise ValidationError("At least one item is required")
    _check_discount(order_discount_bps, "Order")

    subtotal = sum(line.line_total_cents for line in priced)
    order_discount = percent_of(subtotal, order_discount_bps)
    discounted = subtotal - order_discount
    tax, total = calculate_tax(discounted, tax_mode=tax_mode, tax_rate_bps=tax_rate_bps)

    return PricingResult(
        lines=priced,
        subtotal_cents=subtotal,
        discount_bps=order_discount_bps,
        discount_amount_cents=order_discount,
        discounted_subtotal_cents=discounted,
        tax_mode=tax_mode,
        tax_rate_bps=tax_rate_bps,
        tax_amount_cents=tax,
        total_cents=total,
    )
