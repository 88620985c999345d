"""Unit tests for invoicehub/services/invoice_status.py"""

import pytest

from invoicehub.errors import InvalidStatusTransitionError
from invoicehub.services.invoice_status import (
    ALLOWED_TRANSITIONS,
    InvoiceStatus,
    can_transition,
    ensure_transition,
    is_editable,
    is_payable,
    parse_status,
)


def test_every_status_has_transition_entry():
    assert set(ALLOWED_TRANSITIONS) == set(InvoiceStatus)


@pytest.mark.parametrize(
    "current,target",
    [
        ("draft", "scheduled"),
        ("draft", "sent"),
        ("scheduled", "draft"),
        ("sent", "overdue"),
        ("overdue", "sent"),
        ("paid", "refunded"),
        ("cancelled", "draft"),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target) is True
    assert ensure_transition(current, target) == InvoiceStatus(target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("draft", "paid"),
        ("sent", "partially_paid"),
        ("paid", "draft"),
        ("refunded", "sent"),
        ("cancelled", "sent"),
    ],
)
def test_rejected_transitions(current, target):
    assert can_transition(current, target) is False
    with pytest.raises(InvalidStatusTransitionError) as exc:
        ensure_transition(current, target)
    assert exc.value.status_code == 409
    assert f"from '{current}' to '{target}'" in exc.value.message


def test_same_status_is_a_noop_transition():
    assert can_transition("paid", "paid") is True


def test_unknown_status():
    with pytest.raises(InvalidStatusTransitionError) as exc:
        parse_status("archived")
    assert exc.value.code == "INVALID_STATUS"


def test_editable_and_payable():
    assert is_editable("draft") is True
    assert is_editable("partially_paid") is False
    assert is_editable("paid") is False
    assert is_payable("overdue") is True
    assert is_payable("cancelled") is False
    assert is_payable("refunded") is False

