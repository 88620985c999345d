"""
Invoice totals: server-side subtotal/tax/total arithmetic.

Totals are always recomputed here from the submitted line items; a total sent
by the client is only ever compared against the result, never stored.
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Iterable, Mapping, Union

import structlog

from invoicehub.config import settings
from invoicehub.errors import InvalidLineItemError, InvalidTaxRateError, TotalMismatchError

logger = structlog.get_logger()

Number = Union[str, int, float, Decimal]

MIN_TAX_RATE = 0.0
MAX_TAX_RATE = 100.0


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: str
    tax: str
    total: str

    def as_decimals(self) -> dict[str, Decimal]:
        return {k: Decimal(v) for k, v in asdict(self).items()}


def _parse_number(value: Any) -> float:
    """Parse a str/int/float/Decimal to float. Returns NaN when unparsable."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return math.nan


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _format(value: float) -> str:
    return f"{value:.2f}"


def parse_tax_rate(tax_rate: Any) -> float:
    if tax_rate is None or (isinstance(tax_rate, str) and not tax_rate.strip()):
        return 0.0
    rate = _parse_number(tax_rate)
    if math.isnan(rate) or rate < MIN_TAX_RATE or rate > MAX_TAX_RATE:
        raise InvalidTaxRateError("Tax rate must be between 0 and 100")
    return rate


def calculate_invoice_totals(line_items: Iterable[Any], tax_rate: Any) -> InvoiceTotals:
    """
    Compute subtotal, tax and total for a set of line items.

    Each line item needs a quantity > 0 and a price >= 0. Any invalid row
    aborts the whole calculation. Sums are accumulated in floating point and
    rounded to 2 decimals only on output.

    Raises:
        InvalidLineItemError: empty list, or a non-numeric/out-of-range quantity or price
        InvalidTaxRateError: tax rate not a number within [0, 100]
    """
    items = list(line_items or [])
    if not items:
        raise InvalidLineItemError("At least one line item is required")

    subtotal = 0.0
    for item in items:
        qty = _parse_number(_field(item, "quantity"))
        price = _parse_number(_field(item, "price"))
        if not (math.isfinite(qty) and math.isfinite(price)) or qty <= 0 or price < 0:
            raise InvalidLineItemError("Invalid quantity or price in line items")
        subtotal += qty * price

    rate = parse_tax_rate(tax_rate)
    tax = subtotal * (rate / 100)
    total = subtotal + tax
    if not (math.isfinite(subtotal) and math.isfinite(total)):
        raise InvalidLineItemError("Line item amounts are too large")

    return InvoiceTotals(
        subtotal=_format(subtotal),
        tax=_format(tax),
        total=_format(total),
    )


def validate_total(
    client_total: Number,
    calculated_total: Number,
    tolerance: float = 0.02,
) -> bool:
    """True iff the two totals agree within `tolerance`. Never raises."""
    client = _parse_number(client_total)
    calculated = _parse_number(calculated_total)
    if math.isnan(client) or math.isnan(calculated):
        return False
    return abs(calculated - client) <= tolerance


def ensure_total_matches(calculated_total: str, client_total: Number) -> None:
    """Reject a client-submitted total that disagrees with the server calculation."""
    if validate_total(client_total, calculated_total, settings.TOTAL_TOLERANCE):
        return
    client = _parse_number(client_total)
    received = _format(client) if not math.isnan(client) else str(client_total)
    logger.warning(
        "invoice_total_mismatch",
        expected=calculated_total,
        received=received,
    )
    raise TotalMismatchError(
        f"Total mismatch - calculation error detected. "
        f"Expected: {calculated_total}, Received: {received}"
    )


def prepare_line_items(line_items: Iterable[Any]) -> list[dict[str, str]]:
    """Normalise validated line items into rows ready for persistence."""
    prepared = []
    for item in line_items:
        qty = _parse_number(_field(item, "quantity"))
        price = _parse_number(_field(item, "price"))
        prepared.append(
            {
                "description": str(_field(item, "description") or ""),
                "quantity": _format(qty),
                "price": _format(price),
                "amount": _format(qty * price),
            }
        )
    return prepared
