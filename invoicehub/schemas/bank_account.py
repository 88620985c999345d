from typing import Optional
from pydantic import BaseModel, Field


class BankAccountCreate(BaseModel):
    account_holder_name: str = Field(..., min_length=1, max_length=200)
    bank_name: str = Field(..., min_length=1, max_length=200)
    account_number: Optional[str] = Field(None, max_length=50)
    iban: Optional[str] = Field(None, pattern=r"^[A-Z]{2}\d{2}[A-Z0-9]{10,30}$")
    swift_code: Optional[str] = Field(None, pattern=r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")
    bank_address: Optional[str] = None
    bank_branch: Optional[str] = Field(None, max_length=200)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    is_default: bool = False


class BankAccountUpdate(BaseModel):
    account_holder_name: Optional[str] = Field(None, min_length=1, max_length=200)
    bank_name: Optional[str] = Field(None, min_length=1, max_length=200)
    account_number: Optional[str] = Field(None, max_length=50)
    iban: Optional[str] = Field(None, pattern=r"^[A-Z]{2}\d{2}[A-Z0-9]{10,30}$")
    swift_code: Optional[str] = Field(None, pattern=r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")
    bank_address: Optional[str] = None
    bank_branch: Optional[str] = Field(None, max_length=200)
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")


class BankAccountResponse(BaseModel):
    id: str
    account_holder_name: str
    bank_name: str
    account_number: Optional[str] = None
    iban: Optional[str] = None
    swift_code: Optional[str] = None
    bank_address: Optional[str] = None
    bank_branch: Optional[str] = None
    currency: str
    is_default: bool
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
