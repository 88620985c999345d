import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.errors import NotFoundError
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.bank_account import BankAccount
from invoicehub.schemas.bank_account import (
    BankAccountCreate,
    BankAccountResponse,
    BankAccountUpdate,
)
from invoicehub.schemas.common import PageParams, PaginatedResponse, iso

logger = structlog.get_logger()
router = APIRouter()


def _to_response(b: BankAccount) -> BankAccountResponse:
    return BankAccountResponse(
        id=str(b.id),
        account_holder_name=b.account_holder_name,
        bank_name=b.bank_name,
        account_number=b.account_number,
        iban=b.iban,
        swift_code=b.swift_code,
        bank_address=b.bank_address,
        bank_branch=b.bank_branch,
        currency=b.currency,
        is_default=b.is_default,
        created_at=iso(b.created_at) or "",
        updated_at=iso(b.updated_at) or "",
    )


async def _get_account(db: AsyncSession, account_id, user_id) -> BankAccount:
    result = await db.execute(
        select(BankAccount).where(BankAccount.id == account_id, BankAccount.user_id == user_id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundError("Bank account not found")
    return account


async def _clear_default(db: AsyncSession, user_id) -> None:
    await db.execute(
        update(BankAccount)
        .where(BankAccount.user_id == user_id, BankAccount.is_default == True)  # noqa: E712
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


@router.get("", response_model=PaginatedResponse[BankAccountResponse])
async def list_bank_accounts(
    paging: PageParams = Depends(),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Default account first."""
    user_id = current_user["user_id"]
    total = (
        await db.execute(select(func.count(BankAccount.id)).where(BankAccount.user_id == user_id))
    ).scalar() or 0
    result = await db.execute(
        select(BankAccount)
        .where(BankAccount.user_id == user_id)
        .order_by(BankAccount.is_default.desc(), BankAccount.created_at)
        .offset(paging.offset)
        .limit(paging.limit)
    )
    items = [_to_response(b) for b in result.scalars().all()]
    return paging.response(items, total)


@router.get("/{account_id}", response_model=BankAccountResponse)
async def get_bank_account(
    account_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await _get_account(db, account_id, current_user["user_id"]))


@router.post("", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_bank_account(
    body: BankAccountCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    if body.is_default:
        await _clear_default(db, user_id)
    account = BankAccount(user_id=user_id, **body.model_dump())
    db.add(account)
    await db.flush()
    logger.info("bank_account_created", bank_account_id=str(account.id))
    return _to_response(account)


@router.patch("/{account_id}", response_model=BankAccountResponse)
async def update_bank_account(
    account_id: uuid.UUID,
    body: BankAccountUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    account = await _get_account(db, account_id, current_user["user_id"])
    for field, val in body.model_dump(exclude_unset=True).items():
        setattr(account, field, val)
    await db.flush()
    return _to_response(account)


@router.post("/{account_id}/set-default", response_model=BankAccountResponse)
async def set_default_bank_account(
    account_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Make this account the default and clear the flag on every other account."""
    user_id = current_user["user_id"]
    account = await _get_account(db, account_id, user_id)
    await _clear_default(db, user_id)
    account.is_default = True
    await db.flush()
    logger.info("bank_account_default_set", bank_account_id=str(account.id))
    return _to_response(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bank_account(
    account_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    account = await _get_account(db, account_id, current_user["user_id"])
    await db.delete(account)
    await db.flush()
    logger.info("bank_account_deleted", bank_account_id=str(account_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
