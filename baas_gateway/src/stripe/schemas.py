from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, EmailStr, Field, validator

from ..auth.schema import CamelModel


class RefundReason(str, Enum):
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    REQUESTED_BY_CUSTOMER = "requested_by_customer"


def _positive_amount(v: float) -> float:
    if v is not None and v <= 0:
        raise ValueError("Amount must be greater than zero")
    return v


# ----- Payments -----
class CreatePaymentIntentBody(CamelModel):
    amount: float = Field(..., description="Amount in dollars, converted to cents server side")
    currency: str = Field(..., min_length=3, max_length=3)
    customer_email: EmailStr
    description: Optional[str] = None
    payment_method_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    payment_method_types: Optional[List[str]] = None

    @validator("amount")
    def check_amount(cls, v):
        return _positive_amount(v)

    @validator("currency")
    def lower_currency(cls, v: str) -> str:
        return v.lower()


class ConfirmPaymentIntentBody(CamelModel):
    payment_method_id: str = Field(..., min_length=1)


class RefundPaymentBody(CamelModel):
    amount: Optional[float] = Field(None, description="Refund in dollars; omit for a full refund")
    reason: Optional[RefundReason] = None
    metadata: Optional[Dict[str, str]] = None
    reverse_transfer: Optional[bool] = None
    refund_application_fee: Optional[bool] = None

    @validator("amount")
    def check_amount(cls, v):
        return _positive_amount(v)


class BulkRefundBody(CamelModel):
    payment_intent_ids: List[str] = Field(..., min_length=1)
    reason: Optional[RefundReason] = None
    metadata: Optional[Dict[str, str]] = None


class CreateTopupBody(CamelModel):
    amount: float = Field(..., ge=1)
    currency: str = Field(..., min_length=3, max_length=3)
    source: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class SavePaymentMethodBody(CamelModel):
    payment_method_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    set_as_default: Optional[bool] = None


class CreateCustomerBody(CamelModel):
    email: EmailStr
    name: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class SetupIntentBody(CamelModel):
    customer_id: str = Field(..., min_length=1)


# ----- Connect -----
class CreateConnectAccountBody(CamelModel):
    country: str = Field(..., min_length=2, max_length=2)
    email: EmailStr
    business_name: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class AccountLinkBody(CamelModel):
    refresh_url: Optional[str] = None
    return_url: Optional[str] = None


class CreatePayoutBody(CamelModel):
    connect_account_id: str = Field(..., min_length=1)
    amount: float
    currency: str = "usd"
    external_account_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @validator("amount")
    def check_amount(cls, v):
        return _positive_amount(v)


class CreateTransferBody(CamelModel):
    connect_account_id: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0.5)
    currency: str = Field(..., min_length=3, max_length=3)
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class BankAccountBody(CamelModel):
    connect_account_id: str = Field(..., min_length=1)
    bank_account_number: str = Field(..., min_length=1)
    routing_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    country: str = Field(..., min_length=2, max_length=2)
    currency: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


class UpdateBankAccountBody(BankAccountBody):
    external_account_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("externalAccountId", "oldExternalAccountId", "external_account_id"),
    )


class DeleteBankAccountBody(CamelModel):
    connect_account_id: str = Field(..., min_length=1)
    external_account_id: str = Field(..., min_length=1)
