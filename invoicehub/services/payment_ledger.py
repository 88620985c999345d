"""
Payment ledger: records payments against an invoice and reconciles its balance.

The remaining-balance check and the payment insert run in the caller's
transaction after a SELECT ... FOR UPDATE on the invoice row, so concurrent
payments against one invoice are serialised and cannot jointly overpay it.
All functions use the caller's session (no commit). get_db() auto-commits.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.config import settings
from invoicehub.errors import NotFoundError, PaymentRejectedError
from invoicehub.models.invoice import Invoice
from invoicehub.models.payment import Payment
from invoicehub.services.audit_service import invoice_snapshot, record_invoice_event
from invoicehub.services.invoice_status import InvoiceStatus, PAYABLE_STATUSES, parse_status

logger = structlog.get_logger()

CENT = Decimal("0.01")
PAYMENT_TOLERANCE = Decimal(str(settings.PAYMENT_TOLERANCE))


@dataclass
class PaymentCheckResult:
    success: bool
    remaining: Decimal
    requested: Decimal
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class StatusTransition:
    previous: InvoiceStatus
    current: InvoiceStatus
    amount_paid: Decimal
    remaining: Decimal

    @property
    def changed(self) -> bool:
        return self.previous != self.current


@dataclass
class PaymentOutcome:
    payment: Payment
    invoice: Invoice
    transition: StatusTransition


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def remaining_balance(total, amount_paid) -> Decimal:
    return _to_decimal(total) - _to_decimal(amount_paid)


def reconcile_amount_paid(amounts: Iterable) -> Decimal:
    return sum((_to_decimal(a) for a in amounts), Decimal("0"))


def check_payment_amount(
    amount,
    total,
    amount_paid,
    tolerance: Decimal = PAYMENT_TOLERANCE,
) -> PaymentCheckResult:
    """
    Accept a payment if 0 < amount <= remaining balance + tolerance.

    The balance check uses the amount as submitted; only an accepted amount
    is rounded to cents for storage.
    """
    remaining = remaining_balance(total, amount_paid)
    try:
        submitted = _to_decimal(amount)
        requested = submitted
        if submitted.is_finite():
            requested = submitted.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        submitted = requested = Decimal("NaN")

    if not requested.is_finite() or requested <= 0:
        return PaymentCheckResult(
            success=False,
            remaining=remaining,
            requested=requested,
            error_code="PAYMENT_AMOUNT_INVALID",
            message="Payment amount must be greater than zero",
        )

    if submitted > remaining + tolerance:
        shown = submitted if submitted != requested else requested
        return PaymentCheckResult(
            success=False,
            remaining=remaining,
            requested=requested,
            error_code="PAYMENT_EXCEEDS_BALANCE",
            message=(
                f"Payment amount {shown:f} exceeds remaining balance "
                f"{remaining:.2f}"
            ),
        )

    return PaymentCheckResult(success=True, remaining=remaining, requested=requested)


def resolve_payment_status(
    previous_status,
    total,
    amount_paid,
    due_date: Optional[date] = None,
    today: Optional[date] = None,
    tolerance: Decimal = PAYMENT_TOLERANCE,
) -> StatusTransition:
    """
    Decide the invoice status implied by the amount paid so far.

    paid when the balance is settled within tolerance, partially_paid while
    money is outstanding, and when every payment has been removed a
    previously paid invoice falls back to overdue (past due date) or sent.
    Cancelled and refunded invoices keep their status.
    """
    previous = parse_status(previous_status)
    total = _to_decimal(total)
    amount_paid = _to_decimal(amount_paid)
    remaining = total - amount_paid
    today = today or date.today()

    if previous not in PAYABLE_STATUSES:
        current = previous
    elif amount_paid <= 0:
        if previous in (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID):
            if due_date is not None and due_date < today:
                current = InvoiceStatus.OVERDUE
            else:
                current = InvoiceStatus.SENT
        else:
            current = previous
    elif amount_paid >= total - tolerance:
        current = InvoiceStatus.PAID
    else:
        current = InvoiceStatus.PARTIALLY_PAID

    return StatusTransition(
        previous=previous,
        current=current,
        amount_paid=amount_paid,
        remaining=remaining,
    )


def _apply_transition(invoice: Invoice, transition: StatusTransition) -> None:
    invoice.amount_paid = transition.amount_paid.quantize(CENT)
    invoice.status = transition.current.value
    if transition.current == InvoiceStatus.PAID:
        if transition.previous != InvoiceStatus.PAID:
            invoice.paid_at = datetime.utcnow()
    elif transition.previous == InvoiceStatus.PAID:
        invoice.paid_at = None


async def lock_invoice(session: AsyncSession, invoice_id, user_id) -> Invoice:
    """SELECT FOR UPDATE the invoice row owned by user_id."""
    result = await session.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        .with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


async def sum_payments(session: AsyncSession, invoice_id) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.invoice_id == invoice_id
        )
    )
    return _to_decimal(result.scalar() or 0)


async def record_payment(
    session: AsyncSession,
    invoice_id,
    user_id,
    amount,
    payment_date: Optional[date] = None,
    payment_method: str = "bank_transfer",
    transaction_id: Optional[str] = None,
    notes: Optional[str] = None,
    actor_email: Optional[str] = None,
) -> PaymentOutcome:
    """
    Lock the invoice, check the amount against the remaining balance and
    insert the payment. Raises PaymentRejectedError without writing anything
    when the check fails.
    """
    invoice = await lock_invoice(session, invoice_id, user_id)

    if parse_status(invoice.status) not in PAYABLE_STATUSES:
        raise PaymentRejectedError(
            f"Cannot record a payment on a {invoice.status} invoice",
            code="INVOICE_NOT_PAYABLE",
        )

    # Payment rows are the source of truth; invoice.amount_paid is derived
    amount_paid = await sum_payments(session, invoice.id)
    check = check_payment_amount(amount, invoice.total, amount_paid)
    if not check.success:
        logger.warning(
            "payment_rejected",
            invoice_id=str(invoice.id),
            error_code=check.error_code,
            requested=str(check.requested),
            remaining=str(check.remaining),
        )
        raise PaymentRejectedError(check.message, code=check.error_code)

    payment = Payment(
        user_id=invoice.user_id,
        invoice_id=invoice.id,
        amount=check.requested,
        payment_date=payment_date or date.today(),
        payment_method=payment_method,
        transaction_id=transaction_id,
        notes=notes,
    )
    session.add(payment)
    await session.flush()

    before = invoice_snapshot(invoice)
    transition = resolve_payment_status(
        invoice.status,
        invoice.total,
        amount_paid + check.requested,
        due_date=invoice.due_date,
    )
    _apply_transition(invoice, transition)
    await session.flush()

    await record_invoice_event(
        session, invoice, "PAYMENT_RECORDED", before, user_id=user_id, actor_email=actor_email
    )

    logger.info(
        "payment_recorded",
        invoice_id=str(invoice.id),
        payment_id=str(payment.id),
        amount=str(check.requested),
        status=transition.current.value,
    )
    return PaymentOutcome(payment=payment, invoice=invoice, transition=transition)


async def delete_payment(
    session: AsyncSession,
    invoice_id,
    payment_id,
    user_id,
    actor_email: Optional[str] = None,
) -> PaymentOutcome:
    """Delete one payment and recompute amount_paid and status from the rest."""
    invoice = await lock_invoice(session, invoice_id, user_id)

    result = await session.execute(
        select(Payment).where(
            Payment.id == payment_id,
            Payment.invoice_id == invoice.id,
        )
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")

    await session.delete(payment)
    await session.flush()

    before = invoice_snapshot(invoice)
    amount_paid = await sum_payments(session, invoice.id)
    transition = resolve_payment_status(
        invoice.status,
        invoice.total,
        amount_paid,
        due_date=invoice.due_date,
    )
    _apply_transition(invoice, transition)
    await session.flush()

    await record_invoice_event(
        session, invoice, "PAYMENT_DELETED", before, user_id=user_id, actor_email=actor_email
    )

    logger.info(
        "payment_deleted",
        invoice_id=str(invoice.id),
        payment_id=str(payment_id),
        status=transition.current.value,
    )
    return PaymentOutcome(payment=payment, invoice=invoice, transition=transition)


async def list_payments(session: AsyncSession, invoice_id) -> list[Payment]:
    result = await session.execute(
        select(Payment)
        .where(Payment.invoice_id == invoice_id)
        .order_by(Payment.payment_date, Payment.created_at)
    )
    return list(result.scalars().all())
