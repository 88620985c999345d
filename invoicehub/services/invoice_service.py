"""
Invoice service: numbering, scheduling and line-item persistence.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.errors import ConflictError, InvalidStatusTransitionError, NotFoundError
from invoicehub.models.client import Client
from invoicehub.models.invoice import Invoice, InvoiceLineItem
from invoicehub.models.user import User
from invoicehub.services.audit_service import invoice_snapshot, record_invoice_event
from invoicehub.services.invoice_calculation import (
    calculate_invoice_totals,
    ensure_total_matches,
    parse_tax_rate,
    prepare_line_items,
)
from invoicehub.services.invoice_status import InvoiceStatus, ensure_transition, is_editable
from invoicehub.services.payment_ledger import PAYMENT_TOLERANCE, sum_payments

logger = structlog.get_logger()

INVOICE_NUMBER_PREFIX = "INV-"

# Manual moves into these statuses are only allowed while nothing has been paid
UNPAID_ONLY_TARGETS = frozenset(
    {InvoiceStatus.DRAFT, InvoiceStatus.SCHEDULED, InvoiceStatus.SENT}
)


def format_invoice_number(sequence: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}{sequence:05d}"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def determine_schedule_status(
    scheduled_date: Optional[datetime], now: Optional[datetime] = None
) -> InvoiceStatus:
    """An invoice with a send date in the future is scheduled, otherwise it starts as a draft."""
    if scheduled_date is None:
        return InvoiceStatus.DRAFT
    now = _naive_utc(now or datetime.utcnow())
    if _naive_utc(scheduled_date) > now:
        return InvoiceStatus.SCHEDULED
    return InvoiceStatus.DRAFT


async def next_invoice_number(session: AsyncSession, user_id) -> str:
    """
    Allocate the next sequential invoice number for a user.

    The user row is locked FOR UPDATE so concurrent creates never draw the
    same number.
    """
    result = await session.execute(
        select(User).where(User.id == user_id).with_for_update()
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")

    user.last_invoice_number = (user.last_invoice_number or 0) + 1
    await session.flush()
    return format_invoice_number(user.last_invoice_number)


async def get_owned_client(session: AsyncSession, client_id, user_id) -> Client:
    result = await session.execute(
        select(Client).where(Client.id == client_id, Client.user_id == user_id)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise NotFoundError("Client not found")
    return client


async def get_owned_invoice(session: AsyncSession, invoice_id, user_id) -> Invoice:
    result = await session.execute(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == user_id)
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


async def get_line_items(session: AsyncSession, invoice_id) -> list[InvoiceLineItem]:
    result = await session.execute(
        select(InvoiceLineItem)
        .where(InvoiceLineItem.invoice_id == invoice_id)
        .order_by(InvoiceLineItem.line_number)
    )
    return list(result.scalars().all())


async def _insert_line_items(
    session: AsyncSession, invoice_id, line_items: Iterable[Any]
) -> list[InvoiceLineItem]:
    rows = []
    for idx, prepared in enumerate(prepare_line_items(line_items), start=1):
        row = InvoiceLineItem(
            invoice_id=invoice_id,
            line_number=idx,
            description=prepared["description"],
            quantity=Decimal(prepared["quantity"]),
            price=Decimal(prepared["price"]),
            amount=Decimal(prepared["amount"]),
        )
        session.add(row)
        rows.append(row)
    await session.flush()
    return rows


async def create_invoice_with_line_items(
    session: AsyncSession,
    user_id,
    client_id,
    line_items: list,
    tax_rate: Any = None,
    client_total: Any = None,
    scheduled_date: Optional[datetime] = None,
    status: Optional[InvoiceStatus] = None,
    **fields,
) -> tuple[Invoice, list[InvoiceLineItem]]:
    """
    Create an invoice and its line items in the caller's transaction.

    Totals are computed server-side; when the client submitted its own total
    it must agree with the calculation. `fields` carries the remaining
    optional invoice columns (due_date, notes, currency, ...).
    """
    totals = calculate_invoice_totals(line_items, tax_rate)
    if client_total is not None:
        ensure_total_matches(totals.total, client_total)

    await get_owned_client(session, client_id, user_id)
    invoice_number = await next_invoice_number(session, user_id)
    if status is None:
        status = determine_schedule_status(scheduled_date)

    amounts = totals.as_decimals()
    invoice = Invoice(
        user_id=user_id,
        client_id=client_id,
        invoice_number=invoice_number,
        status=status.value,
        scheduled_date=_naive_utc(scheduled_date) if scheduled_date else None,
        subtotal=amounts["subtotal"],
        tax=amounts["tax"],
        tax_rate=Decimal(str(parse_tax_rate(tax_rate))),
        total=amounts["total"],
        amount_paid=Decimal("0"),
        **fields,
    )
    session.add(invoice)
    await session.flush()

    rows = await _insert_line_items(session, invoice.id, line_items)
    logger.info(
        "invoice_created",
        invoice_id=str(invoice.id),
        invoice_number=invoice_number,
        total=totals.total,
        status=invoice.status,
    )
    return invoice, rows


async def replace_line_items(
    session: AsyncSession,
    invoice: Invoice,
    line_items: list,
    tax_rate: Any = None,
    client_total: Any = None,
) -> list[InvoiceLineItem]:
    """
    Swap an invoice's line items and recompute its totals.

    The caller must hold the invoice row lock (payment_ledger.lock_invoice).
    The new total may not drop below what has already been paid.
    """
    if not is_editable(invoice.status):
        raise InvalidStatusTransitionError(
            f"Line items cannot be changed on a {invoice.status} invoice",
            code="INVOICE_NOT_EDITABLE",
        )

    rate = invoice.tax_rate if tax_rate is None else tax_rate
    totals = calculate_invoice_totals(line_items, rate)
    if client_total is not None:
        ensure_total_matches(totals.total, client_total)

    paid = await sum_payments(session, invoice.id)
    new_total = totals.as_decimals()["total"]
    if new_total < paid - PAYMENT_TOLERANCE:
        logger.warning(
            "invoice_total_below_paid",
            invoice_id=str(invoice.id),
            total=totals.total,
            amount_paid=str(paid),
        )
        raise ConflictError(
            f"Invoice total {new_total:.2f} is below the amount already paid {paid:.2f}",
            code="TOTAL_BELOW_AMOUNT_PAID",
        )

    await session.execute(
        delete(InvoiceLineItem).where(InvoiceLineItem.invoice_id == invoice.id)
    )
    rows = await _insert_line_items(session, invoice.id, line_items)

    amounts = totals.as_decimals()
    invoice.subtotal = amounts["subtotal"]
    invoice.tax = amounts["tax"]
    invoice.total = amounts["total"]
    invoice.tax_rate = Decimal(str(parse_tax_rate(rate)))
    await session.flush()

    logger.info(
        "invoice_line_items_replaced",
        invoice_id=str(invoice.id),
        line_count=len(rows),
        total=totals.total,
    )
    return rows


async def change_status(
    session: AsyncSession,
    invoice: Invoice,
    target,
    user_id,
    actor_email: Optional[str] = None,
) -> InvoiceStatus:
    """
    Apply a manual status change, checked against the allowed transitions.

    An invoice with payments on it cannot be moved back to draft, scheduled
    or sent; its status then follows the payment ledger.
    """
    new_status = ensure_transition(invoice.status, target)
    if new_status.value == invoice.status:
        return new_status
    if new_status in UNPAID_ONLY_TARGETS and (invoice.amount_paid or 0) > 0:
        raise InvalidStatusTransitionError(
            f"Cannot move an invoice with payments to '{new_status.value}'",
            code="INVOICE_HAS_PAYMENTS",
        )

    before = invoice_snapshot(invoice)
    invoice.status = new_status.value
    if new_status == InvoiceStatus.SENT and invoice.sent_at is None:
        invoice.sent_at = datetime.utcnow()
    await session.flush()

    await record_invoice_event(
        session,
        invoice,
        "INVOICE_STATUS_CHANGED",
        before,
        user_id=user_id,
        actor_email=actor_email,
    )
    logger.info(
        "invoice_status_changed",
        invoice_id=str(invoice.id),
        from_status=before["status"],
        to_status=invoice.status,
    )
    return new_status
