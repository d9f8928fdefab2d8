"""
Integer-cent money arithmetic.

All amounts are stored and computed as integer cents and all rates as basis
points (1400 bps = 14%). Every division goes through round_half_up() so a value
is rounded to the cent at the step that produces it; unrounded intermediates
are never carried forward.

Tax is additive: prices are net of tax and tax is added on top.

    subtotal = unit_price * quantity
    net      = subtotal - discount
    tax      = round(net * tax_rate_bps / 10000)
    total    = net + tax
"""

from __future__ import annotations

from dataclasses import dataclass

BPS_DENOMINATOR = 10_000

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
VALID_DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded to nearest, halves away from zero."""
    if denominator == 0:
        raise ZeroDivisionError("denominator must be non-zero")
    negative = (numerator < 0) != (denominator < 0)
    n, d = abs(numerator), abs(denominator)
    result = (2 * n + d) // (2 * d)
    return -result if negative else result


def percent_of(amount_cents: int, rate_bps: int) -> int:
    return round_half_up(amount_cents * rate_bps, BPS_DENOMINATOR)


def prorate(amount_cents: int, part: int, whole: int) -> int:
    """amount * part / whole, rounded to the cent."""
    return round_half_up(amount_cents * part, whole)


def discount_amount(base_cents: int, discount_type: str | None, discount_value: int | None) -> int:
    """
    Resolve a discount against a base amount.

    percentage: discount_value is in basis points of the base.
    fixed: discount_value is in cents.
    The result is clamped to [0, base_cents].
    """
    if not discount_type or not discount_value:
        return 0
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise ValueError(f"Invalid discount type: {discount_type}")
    if discount_value < 0:
        raise ValueError("Discount value cannot be negative")

    if discount_type == DISCOUNT_PERCENTAGE:
        amount = percent_of(base_cents, discount_value)
    else:
        amount = discount_value

    return max(0, min(amount, base_cents))


@dataclass(frozen=True)
class LineAmounts:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int

    @property
    def net_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents


def line_amounts(
    unit_price_cents: int,
    quantity: int,
    tax_rate_bps: int,
    discount_type: str | None = None,
    discount_value: int | None = None,
) -> LineAmounts:
    subtotal = unit_price_cents * quantity
    discount = discount_amount(subtotal, discount_type, discount_value)
    net = subtotal - discount
    tax = percent_of(net, tax_rate_bps)
    return LineAmounts(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        total_cents=net + tax,
    )


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    whole, frac = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{frac:02d}"
