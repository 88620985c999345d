"""
Invoice status lifecycle.

Manual status changes are checked against ALLOWED_TRANSITIONS. Moves driven
by payments (into and out of partially_paid / paid) are decided by the payment
ledger, not by callers.
"""

from enum import Enum

from invoicehub.errors import InvalidStatusTransitionError


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset(
        {InvoiceStatus.SCHEDULED, InvoiceStatus.SENT, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.SCHEDULED: frozenset(
        {InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PARTIALLY_PAID: frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset({InvoiceStatus.REFUNDED}),
    InvoiceStatus.CANCELLED: frozenset({InvoiceStatus.DRAFT}),
    InvoiceStatus.REFUNDED: frozenset(),
}

# Line items (and therefore totals) may only change while the invoice is unpaid and open
EDITABLE_STATUSES = frozenset(
    {InvoiceStatus.DRAFT, InvoiceStatus.SCHEDULED, InvoiceStatus.SENT}
)

PAYABLE_STATUSES = frozenset(
    {
        InvoiceStatus.DRAFT,
        InvoiceStatus.SCHEDULED,
        InvoiceStatus.SENT,
        InvoiceStatus.PARTIALLY_PAID,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.PAID,
    }
)

# Statuses that count towards outstanding receivables
OPEN_STATUSES = frozenset(
    {InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE}
)


def parse_status(value) -> InvoiceStatus:
    try:
        return InvoiceStatus(value)
    except ValueError:
        raise InvalidStatusTransitionError(
            f"Unknown invoice status '{value}'", code="INVALID_STATUS"
        )


def can_transition(current, target) -> bool:
    current, target = InvoiceStatus(current), InvoiceStatus(target)
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current, target) -> InvoiceStatus:
    """Return the target status, or raise if current -> target is not allowed."""
    current_status = parse_status(current)
    target_status = parse_status(target)
    if not can_transition(current_status, target_status):
        raise InvalidStatusTransitionError(
            f"Cannot change invoice status from '{current_status.value}' to '{target_status.value}'"
        )
    return target_status


def is_editable(status) -> bool:
    return parse_status(status) in EDITABLE_STATUSES


def is_payable(status) -> bool:
    return parse_status(status) in PAYABLE_STATUSES
