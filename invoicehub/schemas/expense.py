from datetime import date
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from invoicehub.models.payment import PAYMENT_METHODS


def _check_payment_method(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in PAYMENT_METHODS:
        raise ValueError(f"Invalid payment method. Must be one of: {PAYMENT_METHODS}")
    return value


class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    expense_date: date
    payment_method: str = "other"
    vendor: Optional[str] = Field(None, max_length=200)
    is_tax_deductible: bool = False
    receipt: Optional[str] = None
    tags: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        return _check_payment_method(v)


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    expense_date: Optional[date] = None
    payment_method: Optional[str] = None
    vendor: Optional[str] = Field(None, max_length=200)
    is_tax_deductible: Optional[bool] = None
    receipt: Optional[str] = None
    tags: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: Optional[str]) -> Optional[str]:
        return _check_payment_method(v)


class ExpenseResponse(BaseModel):
    id: str
    description: str
    category: str
    amount: str
    expense_date: str
    payment_method: str
    vendor: Optional[str] = None
    is_tax_deductible: bool
    receipt: Optional[str] = None
    tags: Optional[str] = None
    created_at: str
    updated_at: str


class ReceiptUploadRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., pattern=r"^(image/(png|jpeg|webp|heic)|application/pdf)$")


class ReceiptUploadResponse(BaseModel):
    key: str
    upload_url: str
    expires_in: int


class CategoryBreakdownItem(BaseModel):
    category: str
    total: float
    count: int
    percentage: float


class TaxSavingsSummary(BaseModel):
    total_tax_deductible: float
    estimated_tax_savings: float
    tax_rate: float
    breakdown_by_category: List[CategoryBreakdownItem]


class TimeSeriesPoint(BaseModel):
    period: str
    total: float
    count: int
    tax_deductible: float


class VendorSpend(BaseModel):
    vendor: str
    total: float
    count: int
    average: float


class PaymentMethodBreakdownItem(BaseModel):
    payment_method: str
    total: float
    count: int
    percentage: float


class ExpenseAnalyticsResponse(BaseModel):
    category_breakdown: List[CategoryBreakdownItem]
    tax_savings: TaxSavingsSummary
    time_series: List[TimeSeriesPoint]
    top_vendors: List[VendorSpend]
    payment_method_breakdown: List[PaymentMethodBreakdownItem]
    total_expenses: float
    total_count: int
