import uuid
from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from invoicehub.schemas.invoice import NumericInput

Frequency = Literal["weekly", "biweekly", "monthly", "quarterly", "yearly"]


class RecurringItemInput(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: NumericInput
    price: NumericInput


class RecurringInvoiceCreate(BaseModel):
    template_name: str = Field(..., min_length=1, max_length=200)
    client_id: uuid.UUID
    bank_account_id: Optional[uuid.UUID] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    tax_rate: Optional[NumericInput] = None
    notes: Optional[str] = None
    is_active: bool = True
    items: List[RecurringItemInput] = Field(..., min_length=1)


class RecurringInvoiceUpdate(BaseModel):
    template_name: Optional[str] = Field(None, min_length=1, max_length=200)
    bank_account_id: Optional[uuid.UUID] = None
    frequency: Optional[Frequency] = None
    end_date: Optional[date] = None
    next_generation_date: Optional[date] = None
    tax_rate: Optional[NumericInput] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    items: Optional[List[RecurringItemInput]] = Field(None, min_length=1)


class RecurringItemResponse(BaseModel):
    id: str
    line_number: int
    description: str
    quantity: str
    price: str


class RecurringInvoiceResponse(BaseModel):
    id: str
    template_name: str
    client_id: str
    bank_account_id: Optional[str] = None
    frequency: str
    start_date: str
    end_date: Optional[str] = None
    next_generation_date: str
    tax_rate: str
    notes: Optional[str] = None
    is_active: bool
    items: List[RecurringItemResponse] = []
    created_at: str
    updated_at: str
