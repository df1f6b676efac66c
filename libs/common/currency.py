"""Money and tax helpers.

Internal computation unit: integer cents (what Stripe expects).
Persistence unit: NUMERIC(10,2) dollars, handled as ``Decimal``.
Tax rates: 4-decimal strings in config/storage ("0.0714" = 7.14%).

Conversion happens only at the persistence and API boundary; every
discount/tax calculation in between works on integer cents.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

# ─── constants ───────────────────────────────────────────────────────────────

CENTS_PER_DOLLAR: int = 100
TAX_RATE_QUANTUM = Decimal("0.0001")
DOLLAR_QUANTUM = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() first so 7.14 stays 7.14 rather than its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ─── conversion helpers ───────────────────────────────────────────────────────


def cents_to_dollars(cents: int) -> Decimal:
    """Convert integer cents to a 2-decimal dollar amount. 714 → Decimal("7.14")."""
    return (Decimal(int(cents)) / CENTS_PER_DOLLAR).quantize(DOLLAR_QUANTUM)


def dollars_to_cents(dollars: Optional[Number]) -> int:
    """Convert dollars to integer cents, rounding half-up. "7.14" → 714."""
    if dollars is None:
        return 0
    return round_half_up(_to_decimal(dollars) * CENTS_PER_DOLLAR)


def parse_tax_rate(tax_rate: Optional[str]) -> Decimal:
    """Parse a stored tax rate string. Empty or malformed values count as 0."""
    if not tax_rate:
        return Decimal("0")
    try:
        rate = Decimal(tax_rate.strip())
    except InvalidOperation:
        return Decimal("0")
    if rate.is_nan() or rate < 0:
        return Decimal("0")
    return rate


def format_tax_rate(rate: Number) -> str:
    """Format a tax rate with exactly 4 decimals for storage. 0.0714 → "0.0714"."""
    return str(_to_decimal(rate).quantize(TAX_RATE_QUANTUM, rounding=ROUND_HALF_UP))


def calculate_tax_in_cents(subtotal_cents: int, tax_rate: Number) -> int:
    """Tax on a cent subtotal, rounded half-up to whole cents."""
    return round_half_up(Decimal(int(subtotal_cents)) * _to_decimal(tax_rate))


def calculate_total_in_cents(subtotal_cents: int, tax_cents: int) -> int:
    return int(subtotal_cents) + int(tax_cents)


def prorate_tax_for_refund(
    original_subtotal_cents: int,
    refund_subtotal_cents: int,
    original_tax_cents: int,
) -> int:
    """Share of the original tax that goes back with a (partial) refund."""
    if original_subtotal_cents == 0:
        return 0
    share = Decimal(int(refund_subtotal_cents)) / Decimal(int(original_subtotal_cents))
    return round_half_up(Decimal(int(original_tax_cents)) * share)


def format_currency(amount: Number) -> str:
    """Format dollars for display. 1234.5 → "$1,234.50"."""
    value = _to_decimal(amount).quantize(DOLLAR_QUANTUM, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_percentage(rate: Number) -> str:
    """Format a decimal rate as a percentage. 0.0714 → "7.14%"."""
    pct = (_to_decimal(rate) * 100).quantize(DOLLAR_QUANTUM, rounding=ROUND_HALF_UP)
    return f"{pct}%"
