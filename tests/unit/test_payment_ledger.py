"""
Unit tests for invoicehub/services/payment_ledger.py

Uses AsyncMock to isolate from the database.
Tests: check_payment_amount, resolve_payment_status, reconcile_amount_paid,
       record_payment, delete_payment.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from invoicehub.errors import NotFoundError, PaymentRejectedError
from invoicehub.models.audit_log import AuditLog
from invoicehub.models.invoice import Invoice
from invoicehub.models.payment import Payment
from invoicehub.services.invoice_status import InvoiceStatus
from invoicehub.services.payment_ledger import (
    check_payment_amount,
    delete_payment,
    reconcile_amount_paid,
    record_payment,
    remaining_balance,
    resolve_payment_status,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

USER_ID = uuid.uuid4()


def _make_invoice(
    total: str = "137.50",
    amount_paid: str = "0",
    status: str = "sent",
    due_date: Optional[date] = None,
) -> Invoice:
    return Invoice(
        id=uuid.uuid4(),
        user_id=USER_ID,
        client_id=uuid.uuid4(),
        invoice_number="INV-00001",
        status=status,
        subtotal=Decimal(total),
        tax=Decimal("0"),
        tax_rate=Decimal("0"),
        total=Decimal(total),
        amount_paid=Decimal(amount_paid),
        due_date=due_date,
    )


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


def _result(value):
    r = MagicMock()
    r.scalar.return_value = value
    r.scalar_one_or_none.return_value = value
    return r


def _added(session, model) -> list:
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], model)]


# ---------------------------------------------------------------------------
# check_payment_amount
# ---------------------------------------------------------------------------


def test_payment_within_balance_accepted():
    result = check_payment_amount("50.00", "137.50", "0")
    assert result.success is True
    assert result.requested == Decimal("50.00")
    assert result.remaining == Decimal("137.50")


def test_exact_remaining_balance_accepted():
    assert check_payment_amount("87.50", "137.50", "50.00").success is True


def test_overpayment_within_tolerance_accepted():
    assert check_payment_amount("137.51", "137.50", "0").success is True


def test_overpayment_beyond_tolerance_rejected():
    result = check_payment_amount("137.52", "137.50", "0")
    assert result.success is False
    assert result.error_code == "PAYMENT_EXCEEDS_BALANCE"
    assert result.message == "Payment amount 137.52 exceeds remaining balance 137.50"


def test_payment_rejected_when_already_paid():
    result = check_payment_amount("0.02", "137.50", "137.50")
    assert result.success is False
    assert result.error_code == "PAYMENT_EXCEEDS_BALANCE"


@pytest.mark.parametrize("amount", [0, "0", -5, "-0.01", "abc", None, float("nan"), "0.004"])
def test_non_positive_or_invalid_amount_rejected(amount):
    result = check_payment_amount(amount, "137.50", "0")
    assert result.success is False
    assert result.error_code == "PAYMENT_AMOUNT_INVALID"
    assert result.message == "Payment amount must be greater than zero"


def test_amount_rounded_to_cents():
    result = check_payment_amount("10.005", "137.50", "0")
    assert result.success is True
    assert result.requested == Decimal("10.01")


def test_balance_checked_before_rounding():
    result = check_payment_amount("137.514", "137.50", "0")
    assert result.success is False
    assert result.error_code == "PAYMENT_EXCEEDS_BALANCE"
    assert result.message == "Payment amount 137.514 exceeds remaining balance 137.50"

    # rounds up to a stored 137.51 but was within tolerance as submitted
    accepted = check_payment_amount("137.505", "137.50", "0")
    assert accepted.success is True
    assert accepted.requested == Decimal("137.51")


def test_float_amount_converted_exactly():
    assert check_payment_amount(137.51, 137.50, 0).success is True
    assert check_payment_amount(137.52, 137.50, 0).success is False


def test_remaining_balance_and_reconcile():
    assert remaining_balance("137.50", "50") == Decimal("87.50")
    assert reconcile_amount_paid(["50.00", Decimal("25.25"), 10]) == Decimal("85.25")
    assert reconcile_amount_paid([]) == Decimal("0")


# ---------------------------------------------------------------------------
# resolve_payment_status
# ---------------------------------------------------------------------------


def test_partial_payment_moves_to_partially_paid():
    t = resolve_payment_status("sent", "137.50", "50")
    assert t.current == InvoiceStatus.PARTIALLY_PAID
    assert t.changed is True
    assert t.remaining == Decimal("87.50")


def test_full_payment_moves_to_paid():
    t = resolve_payment_status("partially_paid", "137.50", "137.50")
    assert t.previous == InvoiceStatus.PARTIALLY_PAID
    assert t.current == InvoiceStatus.PAID


def test_payment_one_cent_short_counts_as_paid():
    assert resolve_payment_status("sent", "137.50", "137.49").current == InvoiceStatus.PAID


def test_overdue_invoice_partially_paid():
    t = resolve_payment_status("overdue", "100", "10", due_date=date(2026, 1, 1), today=date(2026, 2, 1))
    assert t.current == InvoiceStatus.PARTIALLY_PAID


def test_all_payments_removed_before_due_date_returns_to_sent():
    t = resolve_payment_status("paid", "100", "0", due_date=date(2026, 3, 1), today=date(2026, 2, 1))
    assert t.current == InvoiceStatus.SENT


def test_all_payments_removed_after_due_date_returns_to_overdue():
    t = resolve_payment_status(
        "partially_paid", "100", "0", due_date=date(2026, 1, 1), today=date(2026, 2, 1)
    )
    assert t.current == InvoiceStatus.OVERDUE


def test_zero_paid_keeps_unpaid_status():
    t = resolve_payment_status("draft", "100", "0")
    assert t.current == InvoiceStatus.DRAFT
    assert t.changed is False


@pytest.mark.parametrize("status", ["cancelled", "refunded"])
def test_closed_statuses_unchanged(status):
    t = resolve_payment_status(status, "100", "100")
    assert t.current == InvoiceStatus(status)


def test_paid_invoice_with_payment_removed_drops_to_partially_paid():
    assert resolve_payment_status("paid", "100", "40").current == InvoiceStatus.PARTIALLY_PAID


# ---------------------------------------------------------------------------
# record_payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_record_payment_locks_invoice_row():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("0"))]

    await record_payment(session, invoice.id, USER_ID, "50.00")

    lock_stmt = session.execute.call_args_list[0].args[0]
    sql = str(lock_stmt.compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" in sql
    assert "FROM invoices" in sql


@pytest.mark.asyncio
async def test_record_partial_payment():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("0"))]

    outcome = await record_payment(
        session, invoice.id, USER_ID, "50.00", payment_method="cash", actor_email="a@b.com"
    )

    assert outcome.transition.previous == InvoiceStatus.SENT
    assert outcome.transition.current == InvoiceStatus.PARTIALLY_PAID
    assert invoice.status == "partially_paid"
    assert invoice.amount_paid == Decimal("50.00")
    assert invoice.paid_at is None

    payments = _added(session, Payment)
    assert len(payments) == 1
    assert payments[0].amount == Decimal("50.00")
    assert payments[0].payment_method == "cash"

    audits = _added(session, AuditLog)
    assert audits[0].action == "PAYMENT_RECORDED"
    assert audits[0].after_state == {"status": "partially_paid", "amount_paid": "50.00"}


@pytest.mark.asyncio
async def test_record_final_payment_marks_paid():
    invoice = _make_invoice(amount_paid="100.00", status="partially_paid")
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("100.00"))]

    outcome = await record_payment(session, invoice.id, USER_ID, "37.50")

    assert outcome.transition.current == InvoiceStatus.PAID
    assert invoice.status == "paid"
    assert invoice.amount_paid == Decimal("137.50")
    assert invoice.paid_at is not None


@pytest.mark.asyncio
async def test_record_payment_uses_summed_payments_not_cached_column():
    # Column says nothing paid but a payment row already exists
    invoice = _make_invoice(amount_paid="0")
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("137.50"))]

    with pytest.raises(PaymentRejectedError) as exc:
        await record_payment(session, invoice.id, USER_ID, "10.00")

    assert exc.value.code == "PAYMENT_EXCEEDS_BALANCE"


@pytest.mark.asyncio
async def test_overpayment_rejected_without_writes():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("0"))]

    with pytest.raises(PaymentRejectedError) as exc:
        await record_payment(session, invoice.id, USER_ID, "137.52")

    assert exc.value.status_code == 422
    assert exc.value.code == "PAYMENT_EXCEEDS_BALANCE"
    session.add.assert_not_called()
    assert invoice.status == "sent"
    assert invoice.amount_paid == Decimal("0")


@pytest.mark.asyncio
async def test_zero_payment_rejected():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(Decimal("0"))]

    with pytest.raises(PaymentRejectedError) as exc:
        await record_payment(session, invoice.id, USER_ID, 0)

    assert exc.value.code == "PAYMENT_AMOUNT_INVALID"
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_payment_on_cancelled_invoice_rejected():
    invoice = _make_invoice(status="cancelled")
    session = _mock_session()
    session.execute.side_effect = [_result(invoice)]

    with pytest.raises(PaymentRejectedError) as exc:
        await record_payment(session, invoice.id, USER_ID, "10.00")

    assert exc.value.code == "INVOICE_NOT_PAYABLE"


@pytest.mark.asyncio
async def test_payment_on_missing_invoice():
    session = _mock_session()
    session.execute.side_effect = [_result(None)]

    with pytest.raises(NotFoundError):
        await record_payment(session, uuid.uuid4(), USER_ID, "10.00")


# ---------------------------------------------------------------------------
# delete_payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_last_payment_reverts_paid_invoice():
    invoice = _make_invoice(amount_paid="137.50", status="paid", due_date=date(2999, 1, 1))
    payment = Payment(id=uuid.uuid4(), invoice_id=invoice.id, amount=Decimal("137.50"))
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(payment), _result(Decimal("0"))]

    outcome = await delete_payment(session, invoice.id, payment.id, USER_ID)

    session.delete.assert_awaited_once_with(payment)
    assert outcome.transition.current == InvoiceStatus.SENT
    assert invoice.status == "sent"
    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.paid_at is None
    assert _added(session, AuditLog)[0].action == "PAYMENT_DELETED"


@pytest.mark.asyncio
async def test_delete_one_of_several_payments():
    invoice = _make_invoice(amount_paid="137.50", status="paid")
    payment = Payment(id=uuid.uuid4(), invoice_id=invoice.id, amount=Decimal("37.50"))
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(payment), _result(Decimal("100.00"))]

    outcome = await delete_payment(session, invoice.id, payment.id, USER_ID)

    assert outcome.transition.current == InvoiceStatus.PARTIALLY_PAID
    assert invoice.amount_paid == Decimal("100.00")


@pytest.mark.asyncio
async def test_delete_missing_payment():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.side_effect = [_result(invoice), _result(None)]

    with pytest.raises(NotFoundError) as exc:
        await delete_payment(session, invoice.id, uuid.uuid4(), USER_ID)

    assert exc.value.message == "Payment not found"
    session.delete.assert_not_called()
