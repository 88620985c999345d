"""
Expense analytics: category, tax, period, vendor and payment-method rollups.

Pure functions over a list of expenses (ORM rows or mappings). Amounts that
cannot be parsed count as 0 rather than failing the report.
"""

from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

PERIODS = ("month", "quarter", "year")
TOP_VENDOR_LIMIT = 10


def safe_amount(value: Any) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if parsed != parsed else parsed


def _get(expense: Any, name: str) -> Any:
    if isinstance(expense, Mapping):
        return expense.get(name)
    return getattr(expense, name, None)


def _expense_date(expense: Any) -> Optional[date]:
    value = _get(expense, "expense_date")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    return None


def _rollup(expenses: Iterable[Any], key_fn) -> "OrderedDict[str, dict]":
    groups: "OrderedDict[str, dict]" = OrderedDict()
    for expense in expenses:
        key = key_fn(expense)
        if key is None:
            continue
        group = groups.setdefault(key, {"total": 0.0, "count": 0})
        group["total"] += safe_amount(_get(expense, "amount"))
        group["count"] += 1
    return groups


def _with_percentages(groups: Mapping[str, dict], label: str, grand_total: float) -> list[dict]:
    rows = [
        {
            label: key,
            "total": data["total"],
            "count": data["count"],
            "percentage": (data["total"] / grand_total) * 100 if grand_total > 0 else 0,
        }
        for key, data in groups.items()
    ]
    return sorted(rows, key=lambda r: r["total"], reverse=True)


def calculate_category_breakdown(expenses: list) -> list[dict]:
    total = sum(safe_amount(_get(e, "amount")) for e in expenses)
    return _with_percentages(_rollup(expenses, lambda e: _get(e, "category")), "category", total)


def calculate_tax_savings(expenses: list, tax_rate: float = 0) -> dict:
    deductible = [e for e in expenses if _get(e, "is_tax_deductible")]
    total_deductible = sum(safe_amount(_get(e, "amount")) for e in deductible)
    return {
        "total_tax_deductible": total_deductible,
        "estimated_tax_savings": total_deductible * (tax_rate / 100),
        "tax_rate": tax_rate,
        "breakdown_by_category": _with_percentages(
            _rollup(deductible, lambda e: _get(e, "category")), "category", total_deductible
        ),
    }


def period_key(value: date, period: str = "month") -> str:
    if period == "month":
        return f"{value.year}-{value.month:02d}"
    if period == "quarter":
        return f"{value.year}-Q{(value.month - 1) // 3 + 1}"
    return str(value.year)


def get_time_series(expenses: list, period: str = "month") -> list[dict]:
    buckets: dict[str, dict] = {}
    for expense in expenses:
        expense_date = _expense_date(expense)
        if expense_date is None:
            continue
        key = period_key(expense_date, period)
        amount = safe_amount(_get(expense, "amount"))
        bucket = buckets.setdefault(key, {"total": 0.0, "count": 0, "tax_deductible": 0.0})
        bucket["total"] += amount
        bucket["count"] += 1
        if _get(expense, "is_tax_deductible"):
            bucket["tax_deductible"] += amount
    return [{"period": key, **buckets[key]} for key in sorted(buckets)]


def get_top_vendors(expenses: list, limit: int = TOP_VENDOR_LIMIT) -> list[dict]:
    groups = _rollup(expenses, lambda e: _get(e, "vendor") or None)
    rows = [
        {
            "vendor": vendor,
            "total": data["total"],
            "count": data["count"],
            "average": data["total"] / data["count"] if data["count"] else 0,
        }
        for vendor, data in groups.items()
    ]
    rows.sort(key=lambda r: r["total"], reverse=True)
    return rows[:limit]


def get_payment_method_breakdown(expenses: list) -> list[dict]:
    total = sum(safe_amount(_get(e, "amount")) for e in expenses)
    groups = _rollup(expenses, lambda e: _get(e, "payment_method") or "other")
    return _with_percentages(groups, "payment_method", total)


def filter_by_date_range(
    expenses: list, start_date: Optional[date] = None, end_date: Optional[date] = None
) -> list:
    kept = []
    for expense in expenses:
        expense_date = _expense_date(expense)
        if start_date and (expense_date is None or expense_date < start_date):
            continue
        if end_date and (expense_date is None or expense_date > end_date):
            continue
        kept.append(expense)
    return kept


def calculate_expense_analytics(
    expenses: list, tax_rate: float = 0, period: str = "month"
) -> dict:
    return {
        "category_breakdown": calculate_category_breakdown(expenses),
        "tax_savings": calculate_tax_savings(expenses, tax_rate),
        "time_series": get_time_series(expenses, period),
        "top_vendors": get_top_vendors(expenses),
        "payment_method_breakdown": get_payment_method_breakdown(expenses),
        "total_expenses": sum(safe_amount(_get(e, "amount")) for e in expenses),
        "total_count": len(expenses),
    }
