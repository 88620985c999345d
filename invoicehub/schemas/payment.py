from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from invoicehub.models.payment import PAYMENT_METHODS


class PaymentCreate(BaseModel):
    # Sign and balance checks belong to the payment ledger
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    payment_date: Optional[date] = None
    payment_method: str = "bank_transfer"
    transaction_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError(f"Invalid payment method. Must be one of: {PAYMENT_METHODS}")
        return v


class PaymentResponse(BaseModel):
    id: str
    invoice_id: str
    amount: str
    payment_date: str
    payment_method: str
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: str


class StatusTransitionResponse(BaseModel):
    previous: str
    current: str
    changed: bool
    amount_paid: str
    remaining: str


class PaymentResultResponse(BaseModel):
    payment: PaymentResponse
    invoice_status: StatusTransitionResponse
