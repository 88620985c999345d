"""
Invoice scheduler: sends scheduled invoices and flags overdue ones.

Called by the /internal/jobs endpoints. Uses the caller's session; each
invoice is handled in its own savepoint so one failure does not undo the rest.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.models.client import Client
from invoicehub.models.invoice import Invoice
from invoicehub.models.user import User
from invoicehub.services.audit_service import invoice_snapshot, record_invoice_event
from invoicehub.services.email_service import send_invoice_email
from invoicehub.services.invoice_status import InvoiceStatus

logger = structlog.get_logger()

OVERDUE_CANDIDATES = (InvoiceStatus.SENT.value, InvoiceStatus.PARTIALLY_PAID.value)


class InvoiceDeliveryError(Exception):
    pass


@dataclass
class SchedulerRunResult:
    processed: int = 0
    sent: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)


async def _deliver(session: AsyncSession, invoice: Invoice) -> None:
    if invoice.status != InvoiceStatus.SCHEDULED.value:
        raise InvoiceDeliveryError(
            f"Invoice {invoice.invoice_number} is no longer scheduled ({invoice.status})"
        )
    client = await session.get(Client, invoice.client_id)
    if not client:
        raise InvoiceDeliveryError(f"Client not found for invoice {invoice.invoice_number}")
    user = await session.get(User, invoice.user_id)
    if not user:
        raise InvoiceDeliveryError(f"User not found for invoice {invoice.invoice_number}")

    before = invoice_snapshot(invoice)
    sender_name = user.company_name or user.name or user.email
    if not await send_invoice_email(invoice, client, sender_name):
        raise InvoiceDeliveryError(f"Email delivery failed for invoice {invoice.invoice_number}")

    invoice.status = InvoiceStatus.SENT.value
    invoice.sent_at = datetime.utcnow()
    await session.flush()
    await record_invoice_event(session, invoice, "INVOICE_SENT", before)


async def process_scheduled_invoices(
    session: AsyncSession, now: Optional[datetime] = None, user_id=None
) -> SchedulerRunResult:
    """Email every scheduled invoice whose scheduled_date has passed and mark it sent."""
    now = now or datetime.utcnow()
    q = select(Invoice).where(
        Invoice.status == InvoiceStatus.SCHEDULED.value,
        Invoice.scheduled_date <= now,
    )
    if user_id is not None:
        q = q.where(Invoice.user_id == user_id)
    # Concurrent runs skip rows another run already holds
    q = q.order_by(Invoice.scheduled_date).with_for_update(skip_locked=True)
    due = list((await session.execute(q)).scalars().all())

    run = SchedulerRunResult(processed=len(due))
    for invoice in due:
        try:
            async with session.begin_nested():
                await _deliver(session, invoice)
            run.sent += 1
        except InvoiceDeliveryError as e:
            run.errors += 1
            message = f"Failed to send invoice {invoice.invoice_number}: {e}"
            run.error_messages.append(message)
            logger.error("scheduled_invoice_failed", invoice_id=str(invoice.id), error=str(e))

    logger.info(
        "scheduled_invoices_processed",
        processed=run.processed,
        sent=run.sent,
        errors=run.errors,
    )
    return run


async def mark_overdue_invoices(session: AsyncSession, today: Optional[date] = None) -> int:
    """Move sent / partially paid invoices past their due date to overdue."""
    today = today or date.today()
    result = await session.execute(
        select(Invoice)
        .where(
            Invoice.status.in_(OVERDUE_CANDIDATES),
            Invoice.due_date < today,
        )
        .with_for_update(skip_locked=True)
    )
    invoices = list(result.scalars().all())

    for invoice in invoices:
        before = invoice_snapshot(invoice)
        invoice.status = InvoiceStatus.OVERDUE.value
        await record_invoice_event(session, invoice, "INVOICE_OVERDUE", before)

    await session.flush()
    logger.info("overdue_invoices_marked", count=len(invoices))
    return len(invoices)
