"""
Unit tests for invoicehub/services/invoice_scheduler.py

Uses AsyncMock to isolate from the database and the mail provider.
Tests: process_scheduled_invoices, mark_overdue_invoices.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from invoicehub.models.client import Client
from invoicehub.models.invoice import Invoice
from invoicehub.models.user import User
from invoicehub.services import invoice_scheduler
from invoicehub.services.invoice_scheduler import (
    mark_overdue_invoices,
    process_scheduled_invoices,
)

NOW = datetime(2026, 6, 1, 9, 0)


class _Savepoint:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _mock_session(invoices: list) -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(return_value=_Savepoint())
    result = MagicMock()
    result.scalars.return_value.all.return_value = invoices
    session.execute.return_value = result
    return session


def _make_invoice(status: str = "scheduled") -> Invoice:
    return Invoice(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        invoice_number="INV-00003",
        status=status,
        scheduled_date=datetime(2026, 5, 31, 9, 0),
        subtotal=Decimal("100.00"),
        tax=Decimal("0.00"),
        tax_rate=Decimal("0.00"),
        total=Decimal("100.00"),
        amount_paid=Decimal("0"),
    )


def _compiled(session) -> str:
    stmt = session.execute.call_args_list[0].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_scheduled_invoices_selected_with_skip_locked():
    session = _mock_session([])

    run = await process_scheduled_invoices(session, now=NOW)

    assert run.processed == 0
    sql = _compiled(session)
    assert "FOR UPDATE SKIP LOCKED" in sql
    assert "FROM invoices" in sql


@pytest.mark.asyncio
async def test_scheduled_invoice_sent_once(monkeypatch):
    invoice = _make_invoice()
    session = _mock_session([invoice])
    session.get.side_effect = [
        Client(id=invoice.client_id, name="Acme", email="ap@acme.test"),
        User(id=invoice.user_id, email="owner@example.com", company_name="Studio"),
    ]
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(invoice_scheduler, "send_invoice_email", send)

    run = await process_scheduled_invoices(session, now=NOW)

    assert (run.processed, run.sent, run.errors) == (1, 1, 0)
    send.assert_awaited_once()
    assert invoice.status == "sent"
    assert invoice.sent_at is not None


@pytest.mark.asyncio
async def test_invoice_no_longer_scheduled_not_emailed(monkeypatch):
    invoice = _make_invoice(status="sent")
    session = _mock_session([invoice])
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(invoice_scheduler, "send_invoice_email", send)

    run = await process_scheduled_invoices(session, now=NOW)

    send.assert_not_awaited()
    assert run.sent == 0
    assert run.errors == 1
    assert "no longer scheduled" in run.error_messages[0]


@pytest.mark.asyncio
async def test_failed_email_leaves_invoice_scheduled(monkeypatch):
    invoice = _make_invoice()
    session = _mock_session([invoice])
    session.get.side_effect = [
        Client(id=invoice.client_id, name="Acme", email="ap@acme.test"),
        User(id=invoice.user_id, email="owner@example.com"),
    ]
    monkeypatch.setattr(invoice_scheduler, "send_invoice_email", AsyncMock(return_value=False))

    run = await process_scheduled_invoices(session, now=NOW)

    assert run.errors == 1
    assert invoice.status == "scheduled"


@pytest.mark.asyncio
async def test_overdue_selection_skips_locked_rows():
    invoice = _make_invoice(status="partially_paid")
    session = _mock_session([invoice])

    count = await mark_overdue_invoices(session, today=date(2026, 6, 1))

    assert count == 1
    assert invoice.status == "overdue"
    assert "FOR UPDATE SKIP LOCKED" in _compiled(session)
