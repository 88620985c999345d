import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.recurring_invoice import RecurringInvoice, RecurringInvoiceItem
from invoicehub.routes.invoices import invoice_to_response
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso, money
from invoicehub.schemas.invoice import InvoiceResponse
from invoicehub.schemas.recurring_invoice import (
    RecurringInvoiceCreate,
    RecurringInvoiceResponse,
    RecurringInvoiceUpdate,
    RecurringItemResponse,
)
from invoicehub.services.invoice_calculation import calculate_invoice_totals, parse_tax_rate
from invoicehub.services.invoice_service import get_line_items, get_owned_client
from invoicehub.services.recurring_invoice_service import (
    generate_invoice_from_recurring,
    get_owned_recurring,
    get_recurring_items,
)

logger = structlog.get_logger()
router = APIRouter()


def _to_response(r: RecurringInvoice, items: list[RecurringInvoiceItem]) -> RecurringInvoiceResponse:
    return RecurringInvoiceResponse(
        id=str(r.id),
        template_name=r.template_name,
        client_id=str(r.client_id),
        bank_account_id=str(r.bank_account_id) if r.bank_account_id else None,
        frequency=r.frequency,
        start_date=r.start_date.isoformat(),
        end_date=iso(r.end_date),
        next_generation_date=r.next_generation_date.isoformat(),
        tax_rate=money(r.tax_rate),
        notes=r.notes,
        is_active=r.is_active,
        items=[
            RecurringItemResponse(
                id=str(i.id),
                line_number=i.line_number,
                description=i.description,
                quantity=money(i.quantity),
                price=money(i.price),
            )
            for i in items
        ],
        created_at=iso(r.created_at) or "",
        updated_at=iso(r.updated_at) or "",
    )


async def _store_items(db: AsyncSession, recurring_id, items: list[dict]) -> list[RecurringInvoiceItem]:
    rows = []
    for idx, item in enumerate(items, start=1):
        row = RecurringInvoiceItem(
            recurring_invoice_id=recurring_id,
            line_number=idx,
            description=item["description"],
            quantity=Decimal(str(item["quantity"])),
            price=Decimal(str(item["price"])),
        )
        db.add(row)
        rows.append(row)
    await db.flush()
    return rows


@router.get("", response_model=PaginatedResponse[RecurringInvoiceResponse])
async def list_recurring_invoices(
    paging: PageParams = Depends(),
    is_active: Optional[bool] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    q = select(RecurringInvoice).where(RecurringInvoice.user_id == user_id)
    count_q = select(func.count(RecurringInvoice.id)).where(RecurringInvoice.user_id == user_id)
    if is_active is not None:
        q = q.where(RecurringInvoice.is_active == is_active)
        count_q = count_q.where(RecurringInvoice.is_active == is_active)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(RecurringInvoice.next_generation_date).offset(paging.offset).limit(paging.limit)
    )
    items = []
    for r in result.scalars().all():
        items.append(_to_response(r, await get_recurring_items(db, r.id)))
    return paging.response(items, total)


@router.get("/{recurring_id}", response_model=RecurringInvoiceResponse)
async def get_recurring_invoice(
    recurring_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    r = await get_owned_recurring(db, recurring_id, current_user["user_id"])
    return _to_response(r, await get_recurring_items(db, r.id))


@router.post("", response_model=RecurringInvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_invoice(
    body: RecurringInvoiceCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    items = [i.model_dump() for i in body.items]
    # Reject bad items and tax rates up front rather than on the first generation run
    calculate_invoice_totals(items, body.tax_rate)
    await get_owned_client(db, body.client_id, user_id)

    r = RecurringInvoice(
        user_id=user_id,
        client_id=body.client_id,
        bank_account_id=body.bank_account_id,
        template_name=body.template_name,
        frequency=body.frequency,
        start_date=body.start_date,
        end_date=body.end_date,
        next_generation_date=body.start_date,
        tax_rate=Decimal(str(parse_tax_rate(body.tax_rate))),
        notes=body.notes,
        is_active=body.is_active,
    )
    db.add(r)
    await db.flush()
    rows = await _store_items(db, r.id, items)
    logger.info("recurring_invoice_created", recurring_invoice_id=str(r.id), frequency=r.frequency)
    return _to_response(r, rows)


@router.patch("/{recurring_id}", response_model=RecurringInvoiceResponse)
async def update_recurring_invoice(
    recurring_id: uuid.UUID,
    body: RecurringInvoiceUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    r = await get_owned_recurring(db, recurring_id, current_user["user_id"])
    updates = body.model_dump(exclude_unset=True)
    items = updates.pop("items", None)

    if "tax_rate" in updates or items is not None:
        rate = updates.get("tax_rate", r.tax_rate)
        check_items = items if items is not None else [
            {"description": i.description, "quantity": i.quantity, "price": i.price}
            for i in await get_recurring_items(db, r.id)
        ]
        calculate_invoice_totals(check_items, rate)
        if "tax_rate" in updates:
            updates["tax_rate"] = Decimal(str(parse_tax_rate(rate)))

    for field, val in updates.items():
        setattr(r, field, val)

    if items is not None:
        await db.execute(
            delete(RecurringInvoiceItem).where(RecurringInvoiceItem.recurring_invoice_id == r.id)
        )
        rows = await _store_items(db, r.id, items)
    else:
        rows = await get_recurring_items(db, r.id)
    await db.flush()
    return _to_response(r, rows)


@router.post("/{recurring_id}/generate", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def generate_recurring_invoice(
    recurring_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Generate the next invoice from this template now."""
    r = await get_owned_recurring(db, recurring_id, current_user["user_id"])
    invoice = await generate_invoice_from_recurring(db, r, today=date.today())
    return invoice_to_response(invoice, await get_line_items(db, invoice.id), [])


@router.delete("/{recurring_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recurring_invoice(
    recurring_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    r = await get_owned_recurring(db, recurring_id, current_user["user_id"])
    await db.delete(r)
    await db.flush()
    logger.info("recurring_invoice_deleted", recurring_invoice_id=str(recurring_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
