import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.config import settings
from invoicehub.database import get_db
from invoicehub.errors import AppError, InvalidStatusTransitionError, NotFoundError
from invoicehub.middleware.auth import get_current_user
from invoicehub.middleware.authorization import require_roles
from invoicehub.models.bank_account import BankAccount
from invoicehub.models.invoice import Invoice, InvoiceLineItem
from invoicehub.models.payment import Payment
from invoicehub.schemas.audit_log import InvoiceHistoryEntry
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso, money
from invoicehub.schemas.invoice import (
    BulkInvoiceError,
    BulkInvoiceRequest,
    BulkInvoiceResponse,
    InvoiceCreate,
    InvoiceLineItemResponse,
    InvoiceResponse,
    InvoiceUpdate,
    JobRunResponse,
)
from invoicehub.schemas.payment import PaymentResponse
from invoicehub.services.audit_service import list_invoice_history
from invoicehub.services.invoice_scheduler import process_scheduled_invoices
from invoicehub.services.invoice_service import (
    change_status,
    create_invoice_with_line_items,
    determine_schedule_status,
    get_line_items,
    get_owned_client,
    get_owned_invoice,
    replace_line_items,
)
from invoicehub.services.invoice_status import InvoiceStatus, parse_status
from invoicehub.services.payment_ledger import list_payments, lock_invoice

logger = structlog.get_logger()
router = APIRouter()

# Plain columns a PATCH may set directly
_UPDATABLE_FIELDS = (
    "invoice_date",
    "due_date",
    "currency",
    "order_number",
    "project_number",
    "for_project",
    "notes",
)


def _line_to_response(li: InvoiceLineItem) -> InvoiceLineItemResponse:
    return InvoiceLineItemResponse(
        id=str(li.id),
        line_number=li.line_number,
        description=li.description,
        quantity=money(li.quantity),
        price=money(li.price),
        amount=money(li.amount),
    )


def payment_to_response(p: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=str(p.id),
        invoice_id=str(p.invoice_id),
        amount=money(p.amount),
        payment_date=p.payment_date.isoformat(),
        payment_method=p.payment_method,
        transaction_id=p.transaction_id,
        notes=p.notes,
        created_at=iso(p.created_at) or "",
    )


def invoice_to_response(
    inv: Invoice,
    line_items: list[InvoiceLineItem],
    payments: Optional[list[Payment]] = None,
) -> InvoiceResponse:
    return InvoiceResponse(
        id=str(inv.id),
        invoice_number=inv.invoice_number,
        client_id=str(inv.client_id),
        bank_account_id=str(inv.bank_account_id) if inv.bank_account_id else None,
        recurring_invoice_id=str(inv.recurring_invoice_id) if inv.recurring_invoice_id else None,
        status=inv.status,
        invoice_date=iso(inv.invoice_date) or "",
        due_date=iso(inv.due_date),
        scheduled_date=iso(inv.scheduled_date),
        order_number=inv.order_number,
        project_number=inv.project_number,
        for_project=inv.for_project,
        notes=inv.notes,
        currency=inv.currency,
        subtotal=money(inv.subtotal),
        tax=money(inv.tax),
        tax_rate=money(inv.tax_rate),
        total=money(inv.total),
        amount_paid=money(inv.amount_paid),
        remaining=money((inv.total or 0) - (inv.amount_paid or 0)),
        sent_at=iso(inv.sent_at),
        paid_at=iso(inv.paid_at),
        line_items=[_line_to_response(li) for li in line_items],
        payments=[payment_to_response(p) for p in payments] if payments is not None else None,
        created_at=iso(inv.created_at) or "",
        updated_at=iso(inv.updated_at) or "",
    )


async def _check_bank_account(db: AsyncSession, bank_account_id, user_id) -> None:
    if bank_account_id is None:
        return
    result = await db.execute(
        select(BankAccount.id).where(
            BankAccount.id == bank_account_id, BankAccount.user_id == user_id
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Bank account not found")


async def _create_from_body(db: AsyncSession, body: InvoiceCreate, user_id):
    await _check_bank_account(db, body.bank_account_id, user_id)
    return await create_invoice_with_line_items(
        db,
        user_id=user_id,
        client_id=body.client_id,
        line_items=[li.model_dump() for li in body.line_items],
        tax_rate=body.tax_rate,
        client_total=body.total,
        scheduled_date=body.scheduled_date,
        invoice_date=body.invoice_date or date.today(),
        due_date=body.due_date,
        bank_account_id=body.bank_account_id,
        currency=body.currency,
        order_number=body.order_number,
        project_number=body.project_number,
        for_project=body.for_project,
        notes=body.notes,
    )


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    paging: PageParams = Depends(),
    inv_status: Optional[str] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    q = select(Invoice).where(Invoice.user_id == user_id)
    count_q = select(func.count(Invoice.id)).where(Invoice.user_id == user_id)

    if inv_status:
        inv_status = parse_status(inv_status).value
        q = q.where(Invoice.status == inv_status)
        count_q = count_q.where(Invoice.status == inv_status)
    if client_id:
        q = q.where(Invoice.client_id == client_id)
        count_q = count_q.where(Invoice.client_id == client_id)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Invoice.created_at.desc()).offset(paging.offset).limit(paging.limit)
    )
    invoices = result.scalars().all()

    items = []
    for inv in invoices:
        line_items = await get_line_items(db, inv.id)
        items.append(invoice_to_response(inv, line_items))

    return paging.response(items, total)


@router.post("/process-scheduled", response_model=JobRunResponse)
async def trigger_scheduled_invoices(
    current_user: dict = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Manually send every scheduled invoice that is due."""
    run = await process_scheduled_invoices(db)
    logger.info("scheduled_invoices_triggered", user_id=current_user["user_id"], processed=run.processed)
    return JobRunResponse(
        processed=run.processed,
        succeeded=run.sent,
        errors=run.errors,
        error_messages=run.error_messages,
    )


@router.post("/bulk", response_model=BulkInvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_bulk_invoices(
    body: BulkInvoiceRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create several invoices at once. Each invoice succeeds or fails on its own."""
    if not body.invoices:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one invoice is required",
        )
    if len(body.invoices) > settings.MAX_BULK_INVOICES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot create more than {settings.MAX_BULK_INVOICES} invoices at once",
        )

    created: list[InvoiceResponse] = []
    errors: list[BulkInvoiceError] = []
    for idx, item in enumerate(body.invoices):
        try:
            async with db.begin_nested():
                inv, line_items = await _create_from_body(db, item, current_user["user_id"])
            created.append(invoice_to_response(inv, line_items))
        except AppError as e:
            errors.append(
                BulkInvoiceError(
                    index=idx,
                    client_id=str(item.client_id),
                    code=e.code,
                    message=e.message,
                )
            )

    logger.info("invoices_bulk_created", created=len(created), failed=len(errors))
    return BulkInvoiceResponse(
        created_count=len(created),
        failed_count=len(errors),
        invoices=created,
        errors=errors,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    inv = await get_owned_invoice(db, invoice_id, current_user["user_id"])
    line_items = await get_line_items(db, inv.id)
    payments = await list_payments(db, inv.id)
    return invoice_to_response(inv, line_items, payments)


@router.get("/{invoice_id}/line-items", response_model=list[InvoiceLineItemResponse])
async def list_invoice_line_items(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    inv = await get_owned_invoice(db, invoice_id, current_user["user_id"])
    return [_line_to_response(li) for li in await get_line_items(db, inv.id)]


@router.get("/{invoice_id}/history", response_model=list[InvoiceHistoryEntry])
async def get_invoice_history(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Status changes and payment events for this invoice, oldest first."""
    inv = await get_owned_invoice(db, invoice_id, current_user["user_id"])
    return [
        InvoiceHistoryEntry(
            id=str(entry.id),
            action=entry.action,
            actor_email=entry.actor_email,
            before_state=entry.before_state,
            after_state=entry.after_state,
            changed_fields=entry.changed_fields,
            request_id=entry.request_id,
            created_at=iso(entry.created_at) or "",
        )
        for entry in await list_invoice_history(db, inv.id)
    ]


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    inv, line_items = await _create_from_body(db, body, current_user["user_id"])
    return invoice_to_response(inv, line_items, [])


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: uuid.UUID,
    body: InvoiceUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    # Row lock serialises edits with payments on the same invoice
    inv = await lock_invoice(db, invoice_id, user_id)
    provided = body.model_fields_set

    if "client_id" in provided and body.client_id is not None:
        await get_owned_client(db, body.client_id, user_id)
        inv.client_id = body.client_id
    if "bank_account_id" in provided:
        await _check_bank_account(db, body.bank_account_id, user_id)
        inv.bank_account_id = body.bank_account_id
    for field in _UPDATABLE_FIELDS:
        if field in provided:
            setattr(inv, field, getattr(body, field))

    if body.line_items is not None:
        line_items = await replace_line_items(
            db,
            inv,
            [li.model_dump() for li in body.line_items],
            tax_rate=body.tax_rate,
            client_total=body.total,
        )
    elif "tax_rate" in provided:
        # A new tax rate alone still changes the totals
        existing = [
            {"description": li.description, "quantity": li.quantity, "price": li.price}
            for li in await get_line_items(db, inv.id)
        ]
        line_items = await replace_line_items(
            db, inv, existing, tax_rate=body.tax_rate, client_total=body.total
        )
    else:
        line_items = None

    if "scheduled_date" in provided:
        current = parse_status(inv.status)
        if current not in (InvoiceStatus.DRAFT, InvoiceStatus.SCHEDULED):
            raise InvalidStatusTransitionError(
                f"Cannot reschedule a {inv.status} invoice"
            )
        inv.scheduled_date = body.scheduled_date
        target = determine_schedule_status(body.scheduled_date)
        await change_status(db, inv, target, user_id, current_user["email"])
    elif body.status is not None:
        await change_status(db, inv, body.status, user_id, current_user["email"])

    await db.flush()
    if line_items is None:
        line_items = await get_line_items(db, inv.id)
    payments = await list_payments(db, inv.id)
    logger.info("invoice_updated", invoice_id=str(inv.id), fields=sorted(provided))
    return invoice_to_response(inv, line_items, payments)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    inv = await get_owned_invoice(db, invoice_id, current_user["user_id"])
    await db.delete(inv)
    await db.flush()
    logger.info("invoice_deleted", invoice_id=str(invoice_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
