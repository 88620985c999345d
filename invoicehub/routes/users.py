from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.database import get_db
from invoicehub.errors import NotFoundError
from invoicehub.middleware.auth import get_current_user
from invoicehub.models.bank_account import BankAccount
from invoicehub.models.client import Client
from invoicehub.models.invoice import Invoice
from invoicehub.models.service import Service
from invoicehub.models.user import User
from invoicehub.schemas.auth import OnboardingStatus, ProfileUpdate, UserResponse

logger = structlog.get_logger()
router = APIRouter()


def user_to_response(u: User) -> UserResponse:
    return UserResponse(
        id=str(u.id),
        email=u.email,
        name=u.name,
        role=u.role,
        company_name=u.company_name,
        company_logo=u.company_logo,
        address=u.address,
        phone=u.phone,
        tax_office_id=u.tax_office_id,
        preferred_currency=u.preferred_currency or "USD",
        is_active=u.is_active,
    )


async def get_active_user(db: AsyncSession, user_id) -> User:
    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.is_active == True,  # noqa: E712
            User.deleted_at == None,  # noqa: E711
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def _has_any(db: AsyncSession, model, user_id) -> bool:
    count = (
        await db.execute(select(func.count(model.id)).where(model.user_id == user_id))
    ).scalar() or 0
    return count > 0


@router.get("/me", response_model=UserResponse)
async def get_profile(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return user_to_response(await get_active_user(db, current_user["user_id"]))


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await get_active_user(db, current_user["user_id"])
    updates = body.model_dump(exclude_unset=True)
    for field, val in updates.items():
        setattr(user, field, val)
    await db.flush()
    logger.info("user_profile_updated", user_id=str(user.id), fields=sorted(updates))
    return user_to_response(user)


@router.get("/me/onboarding", response_model=OnboardingStatus)
async def get_onboarding_status(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Onboarding is complete once the user has a client, an invoice and a service."""
    user_id = current_user["user_id"]
    has_client = await _has_any(db, Client, user_id)
    has_invoice = await _has_any(db, Invoice, user_id)
    has_service = await _has_any(db, Service, user_id)
    has_bank_account = await _has_any(db, BankAccount, user_id)
    completed = sum((has_client, has_invoice, has_service))
    return OnboardingStatus(
        has_client=has_client,
        has_invoice=has_invoice,
        has_service=has_service,
        has_bank_account=has_bank_account,
        completed_steps=completed,
        is_complete=completed == 3,
    )
