"""
Unit tests for invoicehub/services/invoice_service.py

Tests: format_invoice_number, determine_schedule_status,
       next_invoice_number, replace_line_items, change_status,
       the locked load in the invoice PATCH route.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from invoicehub.errors import ConflictError, InvalidStatusTransitionError, NotFoundError
from invoicehub.models.audit_log import AuditLog
from invoicehub.models.invoice import Invoice
from invoicehub.models.user import User
from invoicehub.routes import invoices as invoice_routes
from invoicehub.schemas.invoice import InvoiceUpdate
from invoicehub.services.invoice_service import (
    change_status,
    determine_schedule_status,
    format_invoice_number,
    next_invoice_number,
    replace_line_items,
)
from invoicehub.services.invoice_status import InvoiceStatus


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session


def _result(value):
    r = MagicMock()
    r.scalar.return_value = value
    r.scalar_one_or_none.return_value = value
    return r


def _make_invoice(status: str = "draft", amount_paid: str = "0") -> Invoice:
    return Invoice(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        invoice_number="INV-00007",
        status=status,
        subtotal=Decimal("100.00"),
        tax=Decimal("0.00"),
        tax_rate=Decimal("0.00"),
        total=Decimal("100.00"),
        amount_paid=Decimal(amount_paid),
    )


def test_format_invoice_number():
    assert format_invoice_number(1) == "INV-00001"
    assert format_invoice_number(123456) == "INV-123456"


def test_schedule_status():
    now = datetime(2026, 6, 1, 12, 0)
    assert determine_schedule_status(None, now) == InvoiceStatus.DRAFT
    assert determine_schedule_status(now + timedelta(hours=1), now) == InvoiceStatus.SCHEDULED
    assert determine_schedule_status(now - timedelta(minutes=1), now) == InvoiceStatus.DRAFT


def test_schedule_status_timezone_aware():
    now = datetime(2026, 6, 1, 12, 0)
    # 13:30 in UTC+02:00 is 11:30 UTC, already past
    aware = datetime(2026, 6, 1, 13, 30, tzinfo=timezone(timedelta(hours=2)))
    assert determine_schedule_status(aware, now) == InvoiceStatus.DRAFT


@pytest.mark.asyncio
async def test_next_invoice_number_locks_user_and_increments():
    user = User(id=uuid.uuid4(), email="demo@example.com", last_invoice_number=41)
    session = _mock_session()
    session.execute.return_value = _result(user)

    number = await next_invoice_number(session, user.id)

    assert number == "INV-00042"
    assert user.last_invoice_number == 42
    stmt = session.execute.call_args.args[0]
    assert "FOR UPDATE" in str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_next_invoice_number_unknown_user():
    session = _mock_session()
    session.execute.return_value = _result(None)
    with pytest.raises(NotFoundError):
        await next_invoice_number(session, uuid.uuid4())


@pytest.mark.asyncio
async def test_replace_line_items_recomputes_totals():
    invoice = _make_invoice()
    session = _mock_session()
    session.execute.return_value = _result(Decimal("0"))

    rows = await replace_line_items(
        session,
        invoice,
        [{"description": "Widget", "quantity": 2, "price": 50}, {"description": "Setup", "quantity": 1, "price": 25}],
        tax_rate=10,
        client_total="137.50",
    )

    assert [r.line_number for r in rows] == [1, 2]
    assert rows[0].amount == Decimal("100.00")
    assert invoice.subtotal == Decimal("125.00")
    assert invoice.tax == Decimal("12.50")
    assert invoice.total == Decimal("137.50")
    assert invoice.tax_rate == Decimal("10.0")


@pytest.mark.asyncio
async def test_replace_line_items_on_paid_invoice_rejected():
    invoice = _make_invoice(status="paid")
    with pytest.raises(InvalidStatusTransitionError) as exc:
        await replace_line_items(_mock_session(), invoice, [{"quantity": 1, "price": 1}])
    assert exc.value.code == "INVOICE_NOT_EDITABLE"


@pytest.mark.asyncio
async def test_change_status_to_sent_stamps_and_audits():
    invoice = _make_invoice(status="draft")
    session = _mock_session()

    result = await change_status(session, invoice, "sent", invoice.user_id, "demo@example.com")

    assert result == InvoiceStatus.SENT
    assert invoice.status == "sent"
    assert invoice.sent_at is not None
    audit = session.add.call_args.args[0]
    assert isinstance(audit, AuditLog)
    assert audit.action == "INVOICE_STATUS_CHANGED"
    assert audit.changed_fields == ["status"]


@pytest.mark.asyncio
async def test_change_status_rejects_illegal_move():
    invoice = _make_invoice(status="draft")
    with pytest.raises(InvalidStatusTransitionError):
        await change_status(_mock_session(), invoice, "paid", invoice.user_id)
    assert invoice.status == "draft"


# ---------------------------------------------------------------------------
# Invoices with payments on them
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_replace_line_items_below_amount_paid_rejected():
    invoice = _make_invoice(status="sent", amount_paid="60.00")
    session = _mock_session()
    session.execute.return_value = _result(Decimal("60.00"))

    with pytest.raises(ConflictError) as exc:
        await replace_line_items(session, invoice, [{"quantity": 1, "price": 10}])

    assert exc.value.code == "TOTAL_BELOW_AMOUNT_PAID"
    assert exc.value.status_code == 409
    # only the payment sum ran; line items and totals untouched
    assert session.execute.await_count == 1
    session.add.assert_not_called()
    assert invoice.total == Decimal("100.00")


@pytest.mark.asyncio
async def test_replace_line_items_uses_payment_rows_not_cached_column():
    invoice = _make_invoice(status="sent", amount_paid="0")
    session = _mock_session()
    session.execute.return_value = _result(Decimal("60.00"))

    with pytest.raises(ConflictError):
        await replace_line_items(session, invoice, [{"quantity": 1, "price": 10}])


@pytest.mark.asyncio
async def test_replace_line_items_at_amount_paid_allowed():
    invoice = _make_invoice(status="sent")
    session = _mock_session()
    session.execute.return_value = _result(Decimal("60.00"))

    await replace_line_items(session, invoice, [{"quantity": 1, "price": "59.99"}])

    assert invoice.total == Decimal("59.99")


@pytest.mark.asyncio
async def test_partially_paid_invoice_can_go_overdue():
    invoice = _make_invoice(status="partially_paid", amount_paid="60.00")
    result = await change_status(_mock_session(), invoice, "overdue", invoice.user_id)
    assert result == InvoiceStatus.OVERDUE
    assert invoice.status == "overdue"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "current,target",
    [("overdue", "sent"), ("cancelled", "draft")],
)
async def test_invoice_with_payments_cannot_reopen(current, target):
    invoice = _make_invoice(status=current, amount_paid="60.00")
    session = _mock_session()

    with pytest.raises(InvalidStatusTransitionError) as exc:
        await change_status(session, invoice, target, invoice.user_id)

    assert exc.value.code == "INVOICE_HAS_PAYMENTS"
    assert invoice.status == current
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_unpaid_overdue_invoice_can_be_resent():
    invoice = _make_invoice(status="overdue")
    result = await change_status(_mock_session(), invoice, "sent", invoice.user_id)
    assert result == InvoiceStatus.SENT


@pytest.mark.asyncio
async def test_update_invoice_loads_row_under_lock(monkeypatch):
    invoice = _make_invoice(status="overdue", amount_paid="60.00")
    lock = AsyncMock(return_value=invoice)
    monkeypatch.setattr(invoice_routes, "lock_invoice", lock)
    session = _mock_session()
    current_user = {"user_id": invoice.user_id, "email": "demo@example.com"}

    with pytest.raises(InvalidStatusTransitionError) as exc:
        await invoice_routes.update_invoice(
            invoice.id, InvoiceUpdate(status="sent"), current_user, session
        )

    lock.assert_awaited_once_with(session, invoice.id, invoice.user_id)
    assert exc.value.code == "INVOICE_HAS_PAYMENTS"
    assert invoice.status == "overdue"
