"""
Unit tests for invoicehub/services/invoice_calculation.py

Pure functions, no database required.
Tests: calculate_invoice_totals, parse_tax_rate, validate_total,
       ensure_total_matches, prepare_line_items.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoicehub.errors import InvalidLineItemError, InvalidTaxRateError, TotalMismatchError
from invoicehub.services.invoice_calculation import (
    InvoiceTotals,
    calculate_invoice_totals,
    ensure_total_matches,
    parse_tax_rate,
    prepare_line_items,
    validate_total,
)


WIDGET_ORDER = [
    {"description": "Widget", "quantity": 2, "price": 50},
    {"description": "Setup", "quantity": 1, "price": 25},
]


# ---------------------------------------------------------------------------
# calculate_invoice_totals
# ---------------------------------------------------------------------------


def test_totals_with_tax():
    totals = calculate_invoice_totals(WIDGET_ORDER, 10)
    assert totals == InvoiceTotals(subtotal="125.00", tax="12.50", total="137.50")


def test_totals_without_tax():
    totals = calculate_invoice_totals([{"quantity": 3, "price": "19.99"}], 0)
    assert totals.subtotal == "59.97"
    assert totals.tax == "0.00"
    assert totals.total == "59.97"


def test_missing_tax_rate_treated_as_zero():
    assert calculate_invoice_totals(WIDGET_ORDER, None).total == "125.00"
    assert calculate_invoice_totals(WIDGET_ORDER, "").total == "125.00"


def test_numeric_strings_accepted():
    totals = calculate_invoice_totals([{"quantity": "1.5", "price": " 10 "}], "20")
    assert totals.subtotal == "15.00"
    assert totals.tax == "3.00"
    assert totals.total == "18.00"


def test_accepts_objects_with_attributes():
    items = [SimpleNamespace(quantity=Decimal("2"), price=Decimal("12.50"))]
    assert calculate_invoice_totals(items, Decimal("8")).total == "27.00"


def test_zero_price_allowed():
    totals = calculate_invoice_totals([{"quantity": 1, "price": 0}], 10)
    assert totals.total == "0.00"


def test_rounding_only_on_output():
    # 3 x 0.335 = 1.005 accumulated unrounded
    totals = calculate_invoice_totals([{"quantity": 3, "price": 0.335}] * 2, 0)
    assert totals.subtotal == "2.01"


def test_as_decimals():
    amounts = calculate_invoice_totals(WIDGET_ORDER, 10).as_decimals()
    assert amounts == {
        "subtotal": Decimal("125.00"),
        "tax": Decimal("12.50"),
        "total": Decimal("137.50"),
    }


@pytest.mark.parametrize(
    "item",
    [
        {"quantity": 0, "price": 10},
        {"quantity": -1, "price": 10},
        {"quantity": 1, "price": -0.01},
        {"quantity": "abc", "price": 10},
        {"quantity": 1, "price": None},
        {"quantity": float("inf"), "price": 1},
        {"quantity": 1, "price": float("nan")},
        {"price": 5},
    ],
)
def test_invalid_line_item_rejected(item):
    with pytest.raises(InvalidLineItemError) as exc:
        calculate_invoice_totals([{"quantity": 1, "price": 1}, item], 0)
    assert exc.value.message == "Invalid quantity or price in line items"
    assert exc.value.status_code == 400


def test_empty_line_items_rejected():
    with pytest.raises(InvalidLineItemError):
        calculate_invoice_totals([], 0)


def test_overflowing_sum_rejected():
    huge = {"quantity": "1e200", "price": "1e200"}
    with pytest.raises(InvalidLineItemError) as exc:
        calculate_invoice_totals([huge], 0)
    assert exc.value.message == "Line item amounts are too large"

    # each row is finite, the running subtotal is not
    big = {"quantity": 1, "price": "1e308"}
    with pytest.raises(InvalidLineItemError):
        calculate_invoice_totals([big, big], 0)

    # subtotal finite, tax pushes the total over
    with pytest.raises(InvalidLineItemError):
        calculate_invoice_totals([{"quantity": 1, "price": "1.7e308"}], 10)


@pytest.mark.parametrize("rate", [-1, 100.01, "abc", 1000])
def test_tax_rate_out_of_range(rate):
    with pytest.raises(InvalidTaxRateError) as exc:
        calculate_invoice_totals(WIDGET_ORDER, rate)
    assert exc.value.code == "INVALID_TAX_RATE"


def test_tax_rate_bounds_inclusive():
    assert parse_tax_rate(0) == 0.0
    assert parse_tax_rate(100) == 100.0
    assert calculate_invoice_totals(WIDGET_ORDER, 100).total == "250.00"


# ---------------------------------------------------------------------------
# validate_total / ensure_total_matches
# ---------------------------------------------------------------------------


def test_validate_total_within_tolerance():
    assert validate_total("137.50", "137.50") is True
    assert validate_total(137.51, "137.50") is True
    assert validate_total("137.49", 137.50) is True
    assert validate_total("137.515", "137.50") is True


def test_validate_total_outside_tolerance():
    assert validate_total("137.55", "137.50") is False
    assert validate_total(100, "137.50") is False


def test_validate_total_custom_tolerance():
    assert validate_total(101, 100, tolerance=1) is True
    assert validate_total(101.5, 100, tolerance=1) is False


def test_validate_total_never_raises_on_garbage():
    assert validate_total("abc", "137.50") is False
    assert validate_total(None, "137.50") is False
    assert validate_total("137.50", None) is False


def test_ensure_total_matches_accepts():
    ensure_total_matches("137.50", "137.51")


def test_ensure_total_matches_rejects_with_message():
    with pytest.raises(TotalMismatchError) as exc:
        ensure_total_matches("137.50", 140)
    assert exc.value.code == "TOTAL_MISMATCH"
    assert "Expected: 137.50" in exc.value.message
    assert "Received: 140.00" in exc.value.message


# ---------------------------------------------------------------------------
# prepare_line_items
# ---------------------------------------------------------------------------


def test_prepare_line_items_formats_amounts():
    rows = prepare_line_items(WIDGET_ORDER)
    assert rows[0] == {
        "description": "Widget",
        "quantity": "2.00",
        "price": "50.00",
        "amount": "100.00",
    }
    assert rows[1]["amount"] == "25.00"
