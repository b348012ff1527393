"""Tests for the TaxRate value object."""

from decimal import Decimal

import pytest

from invoicing.domain import (
    InvalidValueError,
    RequiredFieldError,
    TaxClassification,
    TaxRate,
)


def test_calculate_tax_on_base_amount(sales_tax_10):
    assert sales_tax_10.calculate_tax(Decimal("250.00")) == Decimal("25.00")


def test_calculate_tax_rounds_half_up():
    rate = TaxRate(Decimal("7.25"), TaxClassification.STATE_TAX)
    # 19.99 * 7.25% = 1.449275
    assert rate.calculate_tax(Decimal("19.99")) == Decimal("1.45")
    # 0.10 * 5% = 0.005
    assert TaxRate(5, "VAT").calculate_tax(Decimal("0.10")) == Decimal("0.01")


def test_decimal_rate(sales_tax_10):
    assert sales_tax_10.get_decimal_rate() == Decimal("0.1")


@pytest.mark.parametrize("rate", [Decimal("0"), Decimal("100"), Decimal("12.5")])
def test_rate_bounds_are_inclusive(rate):
    assert TaxRate(rate, TaxClassification.VAT).rate == rate


@pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("100.01"), Decimal("250")])
def test_rate_out_of_range_rejected(rate):
    with pytest.raises(InvalidValueError) as exc_info:
        TaxRate(rate, TaxClassification.VAT)
    assert exc_info.value.field == "rate"


def test_missing_rate_is_required():
    with pytest.raises(RequiredFieldError):
        TaxRate(None, TaxClassification.VAT)


def test_classification_accepts_name():
    assert TaxRate(20, "VAT").classification is TaxClassification.VAT


@pytest.mark.parametrize("classification", [None, "", " "])
def test_missing_classification_is_required(classification):
    with pytest.raises(RequiredFieldError) as exc_info:
        TaxRate(10, classification)
    assert exc_info.value.field == "classification"


def test_unknown_classification_rejected():
    with pytest.raises(InvalidValueError):
        TaxRate(10, "LUXURY_TAX")


def test_no_tax_factory():
    rate = TaxRate.no_tax()
    assert rate.is_zero()
    assert rate.classification is TaxClassification.NO_TAX
    assert rate.calculate_tax(Decimal("999.99")) == Decimal("0.00")


def test_comparisons():
    low = TaxRate(5, TaxClassification.GST)
    high = TaxRate(20, TaxClassification.VAT)
    assert high.is_greater_than(low)
    assert low.is_less_than(high)
    assert low.equals(TaxRate(Decimal("5.00"), "GST"))
    assert not low.equals(TaxRate(5, TaxClassification.VAT))


@pytest.mark.parametrize(
    ("rate", "classification", "expected"),
    [
        (Decimal("10"), TaxClassification.SALES_TAX, "Sales Tax (10.00%)"),
        (Decimal("20"), TaxClassification.VAT, "VAT (20.00%)"),
        (Decimal("5"), TaxClassification.GST, "GST (5.00%)"),
        (Decimal("8.875"), TaxClassification.COMBINED_TAX, "Combined Tax (8.88%)"),
        (Decimal("0"), TaxClassification.NO_TAX, "No Tax (0%)"),
        (Decimal("0"), TaxClassification.SALES_TAX, "No Tax (0%)"),
    ],
)
def test_display_string(rate, classification, expected):
    tax_rate = TaxRate(rate, classification)
    assert tax_rate.to_display_string() == expected
    assert str(tax_rate) == expected
