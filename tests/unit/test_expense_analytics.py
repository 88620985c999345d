"""
Unit tests for invoicehub/services/expense_analytics.py

Pure functions over plain dicts, no database required.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from invoicehub.services.expense_analytics import (
    calculate_category_breakdown,
    calculate_expense_analytics,
    calculate_tax_savings,
    filter_by_date_range,
    get_payment_method_breakdown,
    get_time_series,
    get_top_vendors,
    period_key,
    safe_amount,
)


EXPENSES = [
    {"amount": "100.00", "category": "software", "expense_date": date(2026, 1, 5),
     "vendor": "Adobe", "payment_method": "credit_card", "is_tax_deductible": True},
    {"amount": 50, "category": "software", "expense_date": "2026-01-20",
     "vendor": "Adobe", "payment_method": "credit_card", "is_tax_deductible": True},
    {"amount": "50", "category": "meals", "expense_date": date(2026, 4, 2),
     "vendor": "Bistro", "payment_method": "cash", "is_tax_deductible": False},
    {"amount": "not-a-number", "category": "travel", "expense_date": date(2027, 2, 1),
     "vendor": None, "payment_method": None, "is_tax_deductible": False},
]


def test_safe_amount():
    assert safe_amount("12.5") == 12.5
    assert safe_amount(None) == 0.0
    assert safe_amount("") == 0.0
    assert safe_amount("abc") == 0.0
    assert safe_amount(float("nan")) == 0.0


def test_category_breakdown_sorted_with_percentages():
    rows = calculate_category_breakdown(EXPENSES)
    assert rows[0] == {"category": "software", "total": 150.0, "count": 2, "percentage": 75.0}
    assert rows[1]["category"] == "meals"
    assert rows[1]["percentage"] == 25.0
    # Unparsable amounts still count but contribute nothing
    assert rows[2] == {"category": "travel", "total": 0.0, "count": 1, "percentage": 0.0}


def test_category_breakdown_empty():
    assert calculate_category_breakdown([]) == []


def test_tax_savings():
    savings = calculate_tax_savings(EXPENSES, tax_rate=20)
    assert savings["total_tax_deductible"] == 150.0
    assert savings["estimated_tax_savings"] == pytest.approx(30.0)
    assert savings["tax_rate"] == 20
    assert [r["category"] for r in savings["breakdown_by_category"]] == ["software"]


@pytest.mark.parametrize(
    "period,expected",
    [("month", "2026-05"), ("quarter", "2026-Q2"), ("year", "2026")],
)
def test_period_key(period, expected):
    assert period_key(date(2026, 5, 17), period) == expected


def test_time_series_by_quarter():
    series = get_time_series(EXPENSES, "quarter")
    assert [p["period"] for p in series] == ["2026-Q1", "2026-Q2", "2027-Q1"]
    assert series[0] == {"period": "2026-Q1", "total": 150.0, "count": 2, "tax_deductible": 150.0}
    assert series[1]["tax_deductible"] == 0.0


def test_top_vendors_skips_blank_vendor():
    vendors = get_top_vendors(EXPENSES)
    assert vendors[0] == {"vendor": "Adobe", "total": 150.0, "count": 2, "average": 75.0}
    assert [v["vendor"] for v in vendors] == ["Adobe", "Bistro"]


def test_top_vendors_limit():
    many = [{"amount": i, "vendor": f"v{i}"} for i in range(1, 15)]
    vendors = get_top_vendors(many, limit=3)
    assert [v["vendor"] for v in vendors] == ["v14", "v13", "v12"]


def test_payment_method_defaults_to_other():
    rows = get_payment_method_breakdown(EXPENSES)
    methods = {r["payment_method"]: r for r in rows}
    assert methods["credit_card"]["total"] == 150.0
    assert methods["other"]["count"] == 1


def test_filter_by_date_range():
    kept = filter_by_date_range(EXPENSES, date(2026, 1, 10), date(2026, 12, 31))
    assert [e["amount"] for e in kept] == [50, "50"]


def test_accepts_orm_like_objects():
    expense = SimpleNamespace(
        amount=10, category="office", expense_date=date(2026, 3, 1),
        vendor="Staples", payment_method="debit_card", is_tax_deductible=True,
    )
    report = calculate_expense_analytics([expense], tax_rate=10)
    assert report["total_expenses"] == 10.0
    assert report["total_count"] == 1
    assert report["tax_savings"]["estimated_tax_savings"] == pytest.approx(1.0)
    assert report["time_series"][0]["period"] == "2026-03"


def test_full_report_keys():
    report = calculate_expense_analytics(EXPENSES)
    assert set(report) == {
        "category_breakdown",
        "tax_savings",
        "time_series",
        "top_vendors",
        "payment_method_breakdown",
        "total_expenses",
        "total_count",
    }
    assert report["total_expenses"] == 200.0
    assert report["total_count"] == 4
