"""Commands handed from routes to the Stripe controllers.

Amounts are converted to integer cents when a command is built, so nothing below
the route layer ever sees dollars.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .schemas import (
    BankAccountBody,
    BulkRefundBody,
    CreateConnectAccountBody,
    CreatePaymentIntentBody,
    CreatePayoutBody,
    CreateTopupBody,
    CreateTransferBody,
    RefundPaymentBody,
    UpdateBankAccountBody,
)
from .utils import to_minor_units


@dataclass
class CreatePaymentIntentCommand:
    amount: int
    currency: str
    customer_email: str
    description: Optional[str] = None
    payment_method_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    payment_method_types: List[str] = field(default_factory=lambda: ["card"])

    @classmethod
    def from_dto(cls, body: CreatePaymentIntentBody) -> "CreatePaymentIntentCommand":
        return cls(
            amount=to_minor_units(body.amount),
            currency=body.currency,
            customer_email=body.customer_email,
            description=body.description,
            payment_method_id=body.payment_method_id,
            customer_id=body.customer_id,
            metadata=body.metadata or {},
            payment_method_types=body.payment_method_types or ["card"],
        )


@dataclass
class RefundPaymentCommand:
    payment_intent_id: str
    amount: Optional[int] = None
    reason: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    reverse_transfer: Optional[bool] = None
    refund_application_fee: Optional[bool] = None

    @classmethod
    def from_dto(cls, payment_intent_id: str, body: Optional[RefundPaymentBody]) -> "RefundPaymentCommand":
        if body is None:
            return cls(payment_intent_id=payment_intent_id)
        return cls(
            payment_intent_id=payment_intent_id,
            amount=to_minor_units(body.amount) if body.amount is not None else None,
            reason=body.reason.value if body.reason else None,
            metadata=body.metadata,
            reverse_transfer=body.reverse_transfer,
            refund_application_fee=body.refund_application_fee,
        )


@dataclass
class BulkRefundCommand:
    payment_intent_ids: List[str]
    reason: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def from_dto(cls, body: BulkRefundBody) -> "BulkRefundCommand":
        return cls(
            payment_intent_ids=list(body.payment_intent_ids),
            reason=body.reason.value if body.reason else None,
            metadata=body.metadata,
        )


@dataclass
class CreateTopupCommand:
    amount: int
    currency: str
    source: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def from_dto(cls, body: CreateTopupBody) -> "CreateTopupCommand":
        return cls(
            amount=to_minor_units(body.amount),
            currency=body.currency.lower(),
            source=body.source,
            description=body.description,
            metadata=body.metadata,
        )


@dataclass
class CreateConnectAccountCommand:
    email: str
    country: str
    business_name: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def from_dto(cls, body: CreateConnectAccountBody) -> "CreateConnectAccountCommand":
        return cls(
            email=body.email,
            country=body.country.upper(),
            business_name=body.business_name,
            metadata=body.metadata,
        )


@dataclass
class CreatePayoutCommand:
    connect_account_id: str
    amount: int
    currency: str
    external_account_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def from_dto(cls, body: CreatePayoutBody) -> "CreatePayoutCommand":
        return cls(
            connect_account_id=body.connect_account_id,
            amount=to_minor_units(body.amount),
            currency=body.currency.lower(),
            external_account_id=body.external_account_id,
            description=body.description,
            metadata=body.metadata,
        )


@dataclass
class CreateTransferCommand:
    destination: str
    amount: int
    currency: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    @classmethod
    def from_dto(cls, body: CreateTransferBody) -> "CreateTransferCommand":
        return cls(
            destination=body.connect_account_id,
            amount=to_minor_units(body.amount),
            currency=body.currency.lower(),
            description=body.description,
            metadata=body.metadata,
        )


@dataclass
class BankAccountCommand:
    connect_account_id: str
    account_number: str
    country: str
    routing_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    currency: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    # set only when replacing an existing account
    external_account_id: Optional[str] = None

    @classmethod
    def from_dto(cls, body: BankAccountBody) -> "BankAccountCommand":
        return cls(
            connect_account_id=body.connect_account_id,
            account_number=body.bank_account_number,
            country=body.country,
            routing_number=body.routing_number,
            account_holder_name=body.account_holder_name,
            currency=body.currency.lower() if body.currency else None,
            metadata=body.metadata,
            external_account_id=body.external_account_id if isinstance(body, UpdateBankAccountBody) else None,
        )
