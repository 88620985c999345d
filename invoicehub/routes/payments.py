import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.database import get_db
from invoicehub.middleware.auth import get_current_user
from invoicehub.routes.invoices import payment_to_response
from invoicehub.schemas.common import money
from invoicehub.schemas.payment import (
    PaymentCreate,
    PaymentResponse,
    PaymentResultResponse,
    StatusTransitionResponse,
)
from invoicehub.services.invoice_service import get_owned_invoice
from invoicehub.services.payment_ledger import (
    PaymentOutcome,
    delete_payment,
    list_payments,
    record_payment,
)

router = APIRouter()


def _outcome_to_response(outcome: PaymentOutcome) -> PaymentResultResponse:
    transition = outcome.transition
    return PaymentResultResponse(
        payment=payment_to_response(outcome.payment),
        invoice_status=StatusTransitionResponse(
            previous=transition.previous.value,
            current=transition.current.value,
            changed=transition.changed,
            amount_paid=money(transition.amount_paid),
            remaining=money(transition.remaining),
        ),
    )


@router.get("/{invoice_id}/payments", response_model=list[PaymentResponse])
async def get_invoice_payments(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    inv = await get_owned_invoice(db, invoice_id, current_user["user_id"])
    return [payment_to_response(p) for p in await list_payments(db, inv.id)]


@router.post(
    "/{invoice_id}/payments",
    response_model=PaymentResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    invoice_id: uuid.UUID,
    body: PaymentCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record a payment. Rejected with 422 when it would overpay the invoice."""
    outcome = await record_payment(
        db,
        invoice_id=invoice_id,
        user_id=current_user["user_id"],
        amount=body.amount,
        payment_date=body.payment_date,
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
        notes=body.notes,
        actor_email=current_user["email"],
    )
    return _outcome_to_response(outcome)


@router.delete("/{invoice_id}/payments/{payment_id}", response_model=PaymentResultResponse)
async def remove_payment(
    invoice_id: uuid.UUID,
    payment_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    outcome = await delete_payment(
        db,
        invoice_id=invoice_id,
        payment_id=payment_id,
        user_id=current_user["user_id"],
        actor_email=current_user["email"],
    )
    return _outcome_to_response(outcome)
