"""Unit tests for discount and price breakdown math (no database)."""

from decimal import Decimal

import pytest
from libs.common.config import get_settings
from services.booking_service.models import DiscountType
from services.booking_service.services.discounts import (
    compute_discount_cents,
    get_tax_rate,
    normalize_code,
    price_breakdown,
)


@pytest.mark.unit
def test_percentage_discount_is_percent_of_base():
    assert compute_discount_cents(DiscountType.PERCENTAGE, Decimal("20"), 10000) == 2000
    # 15% of 33.33 = 4.9995 rounds half-up to 5.00
    assert compute_discount_cents(DiscountType.PERCENTAGE, Decimal("15"), 3333) == 500


@pytest.mark.unit
def test_fixed_discount_is_dollars():
    assert compute_discount_cents(DiscountType.FIXED, Decimal("25.50"), 10000) == 2550


@pytest.mark.unit
def test_discount_never_exceeds_base():
    assert compute_discount_cents(DiscountType.FIXED, Decimal("150"), 10000) == 10000
    assert compute_discount_cents(DiscountType.PERCENTAGE, Decimal("100"), 10000) == 10000
    assert compute_discount_cents(DiscountType.FIXED, Decimal("10"), 0) == 0


@pytest.mark.unit
def test_breakdown_taxes_the_discounted_amount():
    breakdown = price_breakdown(10000, 2000, Decimal("0.0763"))

    assert breakdown.taxable_cents == 8000
    assert breakdown.tax_cents == 610
    assert breakdown.total_cents == 8610


@pytest.mark.unit
def test_breakdown_snapshot_is_in_dollars():
    snapshot = price_breakdown(10000, 2000, Decimal("0.0714")).snapshot()

    assert snapshot == {
        "subtotal_amount": Decimal("100.00"),
        "discount_amount": Decimal("20.00"),
        "tax_rate": "0.0714",
        "tax_amount": Decimal("5.71"),
        "total_amount": Decimal("85.71"),
    }


@pytest.mark.unit
def test_breakdown_clamps_discount():
    breakdown = price_breakdown(5000, 9000, Decimal("0.0763"))

    assert breakdown.discount_cents == 5000
    assert breakdown.tax_cents == 0
    assert breakdown.total_cents == 0


@pytest.mark.unit
def test_breakdown_uses_configured_rate_by_default():
    expected = Decimal(get_settings().TAX_RATES[get_settings().DEFAULT_TAX_JURISDICTION])

    assert get_tax_rate() == expected
    assert price_breakdown(10000).tax_rate == expected


@pytest.mark.unit
def test_unknown_jurisdiction_is_untaxed():
    assert get_tax_rate("ZZ") == Decimal("0")


@pytest.mark.unit
def test_codes_are_case_insensitive():
    assert normalize_code("  save20 ") == "SAVE20"
