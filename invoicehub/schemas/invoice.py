import uuid
from datetime import date, datetime
from typing import List, Optional, Union
from pydantic import BaseModel, Field

from invoicehub.schemas.payment import PaymentResponse

# Quantities, prices, tax rates and totals are accepted as numbers or numeric
# strings and validated by the totals calculator, not here.
NumericInput = Union[float, str]


class LineItemInput(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: NumericInput
    price: NumericInput


class InvoiceCreate(BaseModel):
    client_id: uuid.UUID
    line_items: List[LineItemInput] = Field(default_factory=list)
    tax_rate: Optional[NumericInput] = None
    total: Optional[NumericInput] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    scheduled_date: Optional[datetime] = None
    bank_account_id: Optional[uuid.UUID] = None
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    order_number: Optional[str] = Field(None, max_length=100)
    project_number: Optional[str] = Field(None, max_length=100)
    for_project: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    client_id: Optional[uuid.UUID] = None
    line_items: Optional[List[LineItemInput]] = None
    tax_rate: Optional[NumericInput] = None
    total: Optional[NumericInput] = None
    status: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    scheduled_date: Optional[datetime] = None
    bank_account_id: Optional[uuid.UUID] = None
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    order_number: Optional[str] = Field(None, max_length=100)
    project_number: Optional[str] = Field(None, max_length=100)
    for_project: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class InvoiceLineItemResponse(BaseModel):
    id: str
    line_number: int
    description: str
    quantity: str
    price: str
    amount: str


class InvoiceResponse(BaseModel):
    id: str
    invoice_number: str
    client_id: str
    bank_account_id: Optional[str] = None
    recurring_invoice_id: Optional[str] = None
    status: str
    invoice_date: str
    due_date: Optional[str] = None
    scheduled_date: Optional[str] = None
    order_number: Optional[str] = None
    project_number: Optional[str] = None
    for_project: Optional[str] = None
    notes: Optional[str] = None
    currency: str
    subtotal: str
    tax: str
    tax_rate: str
    total: str
    amount_paid: str
    remaining: str
    sent_at: Optional[str] = None
    paid_at: Optional[str] = None
    line_items: List[InvoiceLineItemResponse] = []
    payments: Optional[List[PaymentResponse]] = None
    created_at: str
    updated_at: str


class BulkInvoiceRequest(BaseModel):
    invoices: List[InvoiceCreate] = Field(default_factory=list)


class BulkInvoiceError(BaseModel):
    index: int
    client_id: Optional[str] = None
    code: str
    message: str


class BulkInvoiceResponse(BaseModel):
    created_count: int
    failed_count: int
    invoices: List[InvoiceResponse]
    errors: List[BulkInvoiceError]


class JobRunResponse(BaseModel):
    processed: int
    succeeded: int
    errors: int
    error_messages: List[str] = []
