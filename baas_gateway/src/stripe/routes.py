# baas_gateway/src/stripe/routes.py
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request, status

from .commands import (
    BankAccountCommand,
    BulkRefundCommand,
    CreateConnectAccountCommand,
    CreatePaymentIntentCommand,
    CreatePayoutCommand,
    CreateTopupCommand,
    CreateTransferCommand,
    RefundPaymentCommand,
)
from .controller import StripeConnectController, StripePaymentController, WebhookController
from .schemas import (
    AccountLinkBody,
    BankAccountBody,
    BulkRefundBody,
    ConfirmPaymentIntentBody,
    CreateConnectAccountBody,
    CreateCustomerBody,
    CreatePaymentIntentBody,
    CreatePayoutBody,
    CreateTopupBody,
    CreateTransferBody,
    DeleteBankAccountBody,
    RefundPaymentBody,
    SavePaymentMethodBody,
    SetupIntentBody,
    UpdateBankAccountBody,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["Stripe"])


def get_payment_controller() -> StripePaymentController:
    return StripePaymentController()


def get_connect_controller() -> StripeConnectController:
    return StripeConnectController()


def get_webhook_controller() -> WebhookController:
    return WebhookController()


# ---------------------------------------------------------------------------
# Payment intents
# ---------------------------------------------------------------------------

@router.post("/payment-intent")
async def create_payment_intent(body: CreatePaymentIntentBody,
                                payments: StripePaymentController = Depends(get_payment_controller)):
    """Create a manual-capture payment intent. ``amount`` is in dollars."""
    return await payments.create_payment_intent(CreatePaymentIntentCommand.from_dto(body))


@router.post("/payment-intent/{payment_intent_id}/confirm")
async def confirm_payment_intent(payment_intent_id: str, body: ConfirmPaymentIntentBody,
                                 payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.confirm_payment_intent(payment_intent_id, body.payment_method_id)


@router.post("/payment-intent/{payment_intent_id}/capture")
async def capture_payment(payment_intent_id: str,
                          payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.capture_payment(payment_intent_id)


@router.post("/payment-intent/{payment_intent_id}/cancel")
async def cancel_payment(payment_intent_id: str,
                         payments: StripePaymentController = Depends(get_payment_controller)):
    """Void an uncaptured payment intent."""
    return await payments.cancel_payment(payment_intent_id)


@router.post("/payment-intent/{payment_intent_id}/refund")
async def refund_payment(payment_intent_id: str, body: Optional[RefundPaymentBody] = None,
                         payments: StripePaymentController = Depends(get_payment_controller)):
    """Full refund when no amount is given, otherwise a partial refund in dollars."""
    return await payments.refund_payment(RefundPaymentCommand.from_dto(payment_intent_id, body))


@router.post("/payment-intents/bulk-refund")
async def bulk_refund(body: BulkRefundBody, payments: StripePaymentController = Depends(get_payment_controller)):
    """Refund each intent in turn; failures are reported per intent and never abort the batch."""
    return await payments.bulk_refund(BulkRefundCommand.from_dto(body))


@router.get("/payment-intent/{payment_intent_id}/status")
async def get_payment_intent_status(payment_intent_id: str,
                                    payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.get_payment_intent_status(payment_intent_id)


@router.post("/topup", status_code=status.HTTP_201_CREATED)
async def create_topup(body: CreateTopupBody, payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.create_topup(CreateTopupCommand.from_dto(body))


# ---------------------------------------------------------------------------
# Customers and payment methods
# ---------------------------------------------------------------------------

@router.get("/create-card-save-intent")
async def create_card_save_intent(customer_id: str = Query(..., alias="customerId", min_length=1),
                                  payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.create_setup_intent(customer_id)


@router.post("/save-payment-method")
async def save_payment_method(body: SavePaymentMethodBody,
                              payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.save_payment_method(body.payment_method_id, body.customer_id, body.set_as_default)


@router.post("/customer", status_code=status.HTTP_201_CREATED)
async def create_customer(body: CreateCustomerBody,
                          payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.create_customer(body.email, body.name, body.metadata)


@router.get("/customer/{email}")
async def get_customer_by_email(email: str, payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.get_customer_id_by_email(email)


@router.get("/customer/{customer_id}/payment-method")
async def get_default_payment_method(customer_id: str,
                                     payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.get_default_payment_method(customer_id)


@router.post("/setup-intent")
async def create_setup_intent(body: SetupIntentBody,
                              payments: StripePaymentController = Depends(get_payment_controller)):
    return await payments.create_setup_intent(body.customer_id)


# ---------------------------------------------------------------------------
# Connect
# ---------------------------------------------------------------------------

@router.post("/connect/account", status_code=status.HTTP_201_CREATED)
async def create_connect_account(body: CreateConnectAccountBody,
                                 connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.create_connect_account(CreateConnectAccountCommand.from_dto(body))


@router.get("/connect/account/{account_id}")
async def get_connect_account(account_id: str,
                              refresh_url: Optional[str] = Query(None, alias="refreshUrl"),
                              return_url: Optional[str] = Query(None, alias="returnUrl"),
                              connect: StripeConnectController = Depends(get_connect_controller)):
    """Account state plus an onboarding link when charges, payouts or details are incomplete."""
    return await connect.get_connect_account(account_id, refresh_url, return_url)


@router.post("/connect/account/{account_id}/link")
async def create_account_link(account_id: str, body: Optional[AccountLinkBody] = None,
                              connect: StripeConnectController = Depends(get_connect_controller)):
    body = body or AccountLinkBody()
    return await connect.create_account_link(account_id, body.refresh_url, body.return_url)


@router.get("/connect/account/{account_id}/external-accounts")
async def list_external_accounts(account_id: str, connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.list_external_accounts(account_id)


@router.get("/connect/account/{account_id}/balance")
async def get_connect_balance(account_id: str, connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.get_balance(account_id)


@router.post("/connect/payout", status_code=status.HTTP_201_CREATED)
async def create_payout(body: CreatePayoutBody, connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.create_payout(CreatePayoutCommand.from_dto(body))


@router.post("/connect/transfer", status_code=status.HTTP_201_CREATED)
async def create_transfer(body: CreateTransferBody,
                          connect: StripeConnectController = Depends(get_connect_controller)):
    """Move platform funds to a connected account."""
    return await connect.create_transfer(CreateTransferCommand.from_dto(body))


@router.get("/connect/payout/{payout_id}")
async def get_payout_status(payout_id: str,
                            connect_account_id: str = Query(..., alias="connectAccountId", min_length=1),
                            connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.get_payout_status(payout_id, connect_account_id)


# ---------------------------------------------------------------------------
# Payouts and bank accounts
# ---------------------------------------------------------------------------

@router.get("/payouts")
async def list_payouts(connect_account_id: str = Query(..., alias="connectAccountId", min_length=1),
                       limit: int = Query(10, ge=1, le=100),
                       connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.list_payouts(connect_account_id, limit)


@router.get("/payouts/balance")
async def get_payout_balance(connect_account_id: str = Query(..., alias="connectAccountId", min_length=1),
                             connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.get_balance(connect_account_id)


@router.post("/payouts/{payout_id}/cancel")
async def cancel_payout(payout_id: str,
                        connect_account_id: Optional[str] = Query(None, alias="connectAccountId"),
                        connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.cancel_payout(payout_id, connect_account_id)


@router.post("/payouts/add-bank-accounts", status_code=status.HTTP_201_CREATED)
async def add_bank_account(body: BankAccountBody, connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.create_external_bank_account(BankAccountCommand.from_dto(body))


@router.patch("/payouts/add-bank-accounts")
async def update_bank_account(body: UpdateBankAccountBody,
                              connect: StripeConnectController = Depends(get_connect_controller)):
    """Replace a bank account: the new one is added before the old one is removed."""
    return await connect.update_external_bank_account(BankAccountCommand.from_dto(body))


@router.delete("/payouts/delete-bank-accounts")
async def delete_bank_account(body: DeleteBankAccountBody = Body(...),
                              connect: StripeConnectController = Depends(get_connect_controller)):
    return await connect.delete_external_account(body.connect_account_id, body.external_account_id)


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request,
                         stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
                         webhooks: WebhookController = Depends(get_webhook_controller)):
    payload = await request.body()
    return await webhooks.handle(payload, stripe_signature)
