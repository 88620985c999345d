"""
Recurring invoices: generate draft invoices from templates on a schedule.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.errors import AppError, NotFoundError, ValidationError
from invoicehub.models.invoice import Invoice
from invoicehub.models.recurring_invoice import RecurringInvoice, RecurringInvoiceItem
from invoicehub.services.invoice_service import create_invoice_with_line_items
from invoicehub.services.invoice_status import InvoiceStatus

logger = structlog.get_logger()

FREQUENCIES = ("weekly", "biweekly", "monthly", "quarterly", "yearly")

_DAY_STEPS = {"weekly": 7, "biweekly": 14}
_MONTH_STEPS = {"monthly": 1, "quarterly": 3, "yearly": 12}


@dataclass
class RecurringRunResult:
    processed: int = 0
    generated: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month (Jan 31 + 1 -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_generation_date(current: date, frequency: str) -> date:
    if frequency in _DAY_STEPS:
        return current + timedelta(days=_DAY_STEPS[frequency])
    if frequency in _MONTH_STEPS:
        return add_months(current, _MONTH_STEPS[frequency])
    raise ValidationError(
        f"Unknown frequency '{frequency}'", code="INVALID_FREQUENCY"
    )


async def get_owned_recurring(session: AsyncSession, recurring_id, user_id) -> RecurringInvoice:
    result = await session.execute(
        select(RecurringInvoice).where(
            RecurringInvoice.id == recurring_id,
            RecurringInvoice.user_id == user_id,
        )
    )
    recurring = result.scalar_one_or_none()
    if not recurring:
        raise NotFoundError("Recurring invoice not found")
    return recurring


async def get_recurring_items(session: AsyncSession, recurring_id) -> list[RecurringInvoiceItem]:
    result = await session.execute(
        select(RecurringInvoiceItem)
        .where(RecurringInvoiceItem.recurring_invoice_id == recurring_id)
        .order_by(RecurringInvoiceItem.line_number)
    )
    return list(result.scalars().all())


async def generate_invoice_from_recurring(
    session: AsyncSession,
    recurring: RecurringInvoice,
    today: Optional[date] = None,
) -> Invoice:
    """
    Create a draft invoice from a template and advance its next_generation_date.

    The next date is computed from the template's current next date, not from
    today, so a late run does not shift the schedule.
    """
    today = today or date.today()
    if not recurring.is_active:
        raise ValidationError("Recurring invoice is not active", code="RECURRING_INACTIVE")
    if recurring.end_date and recurring.end_date < today:
        raise ValidationError("Recurring invoice has ended", code="RECURRING_ENDED")

    items = await get_recurring_items(session, recurring.id)
    invoice, _ = await create_invoice_with_line_items(
        session,
        user_id=recurring.user_id,
        client_id=recurring.client_id,
        line_items=items,
        tax_rate=recurring.tax_rate,
        status=InvoiceStatus.DRAFT,
        invoice_date=today,
        bank_account_id=recurring.bank_account_id,
        recurring_invoice_id=recurring.id,
        notes=recurring.notes,
    )

    recurring.next_generation_date = next_generation_date(
        recurring.next_generation_date, recurring.frequency
    )
    await session.flush()

    logger.info(
        "recurring_invoice_generated",
        recurring_invoice_id=str(recurring.id),
        invoice_id=str(invoice.id),
        next_generation_date=recurring.next_generation_date.isoformat(),
    )
    return invoice


async def process_recurring_invoices(
    session: AsyncSession, today: Optional[date] = None
) -> RecurringRunResult:
    """Generate invoices for every active template that is due. One failure does not stop the run."""
    today = today or date.today()
    result = await session.execute(
        select(RecurringInvoice).where(
            RecurringInvoice.is_active == True,  # noqa: E712
            RecurringInvoice.next_generation_date <= today,
        )
    )
    due = list(result.scalars().all())
    run = RecurringRunResult(processed=len(due))

    for recurring in due:
        try:
            async with session.begin_nested():
                await generate_invoice_from_recurring(session, recurring, today=today)
            run.generated += 1
        except AppError as e:
            run.errors += 1
            message = (
                f"Failed to generate invoice from template {recurring.template_name}: "
                f"{e.message}"
            )
            run.error_messages.append(message)
            logger.error(
                "recurring_invoice_generation_failed",
                recurring_invoice_id=str(recurring.id),
                error=e.message,
            )

    logger.info(
        "recurring_invoices_processed",
        processed=run.processed,
        generated=run.generated,
        errors=run.errors,
    )
    return run
