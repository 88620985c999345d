import asyncio
import uuid
from datetime import date
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.errors import NotFoundError
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.expense import Expense
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso, money
from invoicehub.schemas.expense import (
    ExpenseCreate,
    ExpenseResponse,
    ExpenseUpdate,
    ReceiptUploadRequest,
    ReceiptUploadResponse,
)
from invoicehub.services.storage import receipt_storage

logger = structlog.get_logger()
router = APIRouter()

_UPLOAD_URL_TTL = 900


def _to_response(e: Expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=str(e.id),
        description=e.description,
        category=e.category,
        amount=money(e.amount),
        expense_date=e.expense_date.isoformat(),
        payment_method=e.payment_method,
        vendor=e.vendor,
        is_tax_deductible=e.is_tax_deductible,
        receipt=e.receipt,
        tags=e.tags,
        created_at=iso(e.created_at) or "",
        updated_at=iso(e.updated_at) or "",
    )


def _normalize_receipt(reference: Optional[str]) -> Optional[str]:
    if reference is None:
        return None
    key = receipt_storage.extract_key(reference)
    if not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid receipt reference",
        )
    return key


async def _remove_receipt(key: Optional[str]) -> None:
    """Delete a stored receipt. A storage failure is logged and never fails the request."""
    if not key:
        return
    try:
        await asyncio.to_thread(receipt_storage.delete, key)
    except (BotoCoreError, ClientError) as e:
        logger.warning("receipt_delete_failed", key=key, error=str(e))


async def _get_expense(db: AsyncSession, expense_id, user_id) -> Expense:
    result = await db.execute(
        select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
    )
    expense = result.scalar_one_or_none()
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


@router.get("", response_model=PaginatedResponse[ExpenseResponse])
async def list_expenses(
    paging: PageParams = Depends(),
    category: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    q = select(Expense).where(Expense.user_id == user_id)
    count_q = select(func.count(Expense.id)).where(Expense.user_id == user_id)
    if category:
        q = q.where(Expense.category == category)
        count_q = count_q.where(Expense.category == category)
    if start_date:
        q = q.where(Expense.expense_date >= start_date)
        count_q = count_q.where(Expense.expense_date >= start_date)
    if end_date:
        q = q.where(Expense.expense_date <= end_date)
        count_q = count_q.where(Expense.expense_date <= end_date)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Expense.expense_date.desc()).offset(paging.offset).limit(paging.limit)
    )
    items = [_to_response(e) for e in result.scalars().all()]
    return paging.response(items, total)


@router.post("/receipts", response_model=ReceiptUploadResponse)
async def create_receipt_upload(
    body: ReceiptUploadRequest,
    current_user: dict = Depends(get_current_user),
):
    """Return a presigned PUT URL; the client uploads directly and sends the key back on create."""
    key = receipt_storage.build_key(current_user["user_id"], body.filename)
    url = await asyncio.to_thread(
        receipt_storage.get_presigned_upload_url, key, body.content_type, _UPLOAD_URL_TTL
    )
    return ReceiptUploadResponse(key=key, upload_url=url, expires_in=_UPLOAD_URL_TTL)


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await _get_expense(db, expense_id, current_user["user_id"]))


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    body: ExpenseCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = body.model_dump()
    data["receipt"] = _normalize_receipt(body.receipt)
    expense = Expense(user_id=current_user["user_id"], **data)
    db.add(expense)
    await db.flush()
    logger.info("expense_created", expense_id=str(expense.id), category=expense.category)
    return _to_response(expense)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: uuid.UUID,
    body: ExpenseUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await _get_expense(db, expense_id, current_user["user_id"])
    updates = body.model_dump(exclude_unset=True)
    replaced_receipt = None
    if "receipt" in updates:
        updates["receipt"] = _normalize_receipt(updates["receipt"])
        if expense.receipt and expense.receipt != updates["receipt"]:
            replaced_receipt = expense.receipt

    for field, val in updates.items():
        setattr(expense, field, val)
    await db.flush()
    await _remove_receipt(replaced_receipt)
    return _to_response(expense)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await _get_expense(db, expense_id, current_user["user_id"])
    receipt_key = expense.receipt
    await db.delete(expense)
    await db.flush()
    await _remove_receipt(receipt_key)
    logger.info("expense_deleted", expense_id=str(expense_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
