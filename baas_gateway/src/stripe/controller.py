import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from fastapi.concurrency import run_in_threadpool

from ...database.db import get_database
from . import audit, idempotency
from .adapters import StripeConnectAdapter, StripePaymentAdapter
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
from .config import StripeSettings, get_settings
from .errors import CustomerNotFoundError
from .ports import StripeConnectPort, StripePaymentPort
from .webhooks import dispatch

logger = logging.getLogger(__name__)

ONBOARDING_URLS_MISSING = (
    "Account onboarding incomplete. Provide refreshUrl and returnUrl query parameters, "
    "or set STRIPE_CONNECT_REFRESH_URL and STRIPE_CONNECT_RETURN_URL environment variables."
)
ACCOUNT_LINK_URLS_REQUIRED = (
    "refreshUrl and returnUrl are required. Provide them in the request body "
    "or set STRIPE_CONNECT_REFRESH_URL and STRIPE_CONNECT_RETURN_URL environment variables."
)


class StripePaymentController:
    """Payment use-cases. Stripe calls are blocking and run in the threadpool."""

    def __init__(self, adapter: Optional[StripePaymentPort] = None, db=None):
        self.adapter = adapter or StripePaymentAdapter()
        self.db = db if db is not None else get_database()

    async def create_payment_intent(self, cmd: CreatePaymentIntentCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.create_payment_intent,
            amount=cmd.amount,
            currency=cmd.currency,
            receipt_email=cmd.customer_email,
            description=cmd.description,
            metadata=cmd.metadata,
            payment_method_id=cmd.payment_method_id,
            customer_id=cmd.customer_id,
            payment_method_types=cmd.payment_method_types,
        )
        audit.log(self.db, "payment_intent_create", {
            "payment_intent_id": result.get("id"),
            "amount": cmd.amount,
            "currency": cmd.currency,
        })
        return result

    async def confirm_payment_intent(self, payment_intent_id: str, payment_method_id: str) -> Dict[str, Any]:
        return await run_in_threadpool(self.adapter.confirm_payment_intent, payment_intent_id, payment_method_id)

    async def capture_payment(self, payment_intent_id: str) -> Dict[str, Any]:
        result = await run_in_threadpool(self.adapter.capture_payment, payment_intent_id)
        audit.log(self.db, "payment_intent_capture", {"payment_intent_id": payment_intent_id})
        return result

    async def cancel_payment(self, payment_intent_id: str) -> Dict[str, Any]:
        result = await run_in_threadpool(self.adapter.cancel_payment, payment_intent_id)
        audit.log(self.db, "payment_intent_cancel", {"payment_intent_id": payment_intent_id})
        return result

    async def refund_payment(self, cmd: RefundPaymentCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.refund_payment,
            cmd.payment_intent_id,
            amount=cmd.amount,
            reason=cmd.reason,
            metadata=cmd.metadata,
            reverse_transfer=cmd.reverse_transfer,
            refund_application_fee=cmd.refund_application_fee,
        )
        audit.log(self.db, "refund_create", {
            "payment_intent_id": cmd.payment_intent_id,
            "refund_id": result.get("id"),
            "amount": result.get("amount"),
        })
        return result

    async def bulk_refund(self, cmd: BulkRefundCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.bulk_refund, cmd.payment_intent_ids, reason=cmd.reason, metadata=cmd.metadata
        )
        audit.log(
            self.db,
            "refund_bulk",
            {"payment_intent_ids": cmd.payment_intent_ids},
            "ok" if not result["errors"] else "partial",
            f"{len(result['results'])} refunded, {len(result['errors'])} failed",
        )
        return result

    async def get_payment_intent_status(self, payment_intent_id: str) -> Dict[str, Any]:
        return await run_in_threadpool(self.adapter.get_payment_intent_status, payment_intent_id)

    async def create_topup(self, cmd: CreateTopupCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.create_topup,
            amount=cmd.amount,
            currency=cmd.currency,
            source=cmd.source,
            description=cmd.description,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "topup_create", {"topup_id": result.get("id"), "amount": cmd.amount})
        return result

    async def create_setup_intent(self, customer_id: str) -> Dict[str, Any]:
        result = await run_in_threadpool(self.adapter.create_setup_intent, customer_id)
        return {"clientSecret": result["clientSecret"]}

    async def save_payment_method(self, payment_method_id: str, customer_id: str,
                                  set_as_default: Optional[bool] = None) -> Dict[str, Any]:
        # Omitted setAsDefault means "make it the default"
        return await run_in_threadpool(
            self.adapter.save_payment_method, customer_id, payment_method_id, set_as_default is not False
        )

    async def create_customer(self, email: str, name: Optional[str] = None,
                              metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        customer_id = await run_in_threadpool(self.adapter.create_customer, email, name, metadata)
        audit.log(self.db, "customer_create", {"customer_id": customer_id})
        return {"customerId": customer_id}

    async def get_customer_id_by_email(self, email: str) -> Dict[str, Any]:
        customer_id = await run_in_threadpool(self.adapter.get_customer_id_by_email, email)
        if not customer_id:
            raise CustomerNotFoundError(email)
        return {"customerId": customer_id}

    async def get_default_payment_method(self, customer_id: str) -> Dict[str, Any]:
        payment_method = await run_in_threadpool(self.adapter.get_default_payment_method, customer_id)
        return {"paymentMethod": payment_method}


class StripeConnectController:
    """Connect use-cases: accounts and onboarding, bank accounts, transfers and payouts"""

    def __init__(self, adapter: Optional[StripeConnectPort] = None, db=None,
                 settings: Optional[StripeSettings] = None):
        self.settings = settings or get_settings()
        self.adapter = adapter or StripeConnectAdapter(settings=self.settings)
        self.db = db if db is not None else get_database()

    def _onboarding_urls(self, refresh_url: Optional[str], return_url: Optional[str]):
        return (
            refresh_url or self.settings.STRIPE_CONNECT_REFRESH_URL,
            return_url or self.settings.STRIPE_CONNECT_RETURN_URL,
        )

    @staticmethod
    def _needs_onboarding(account: Dict[str, Any]) -> bool:
        return not (account.get("chargesEnabled") and account.get("payoutsEnabled")
                    and account.get("detailsSubmitted"))

    async def create_connect_account(self, cmd: CreateConnectAccountCommand) -> Dict[str, Any]:
        account = await run_in_threadpool(
            self.adapter.create_connect_account,
            email=cmd.email,
            country=cmd.country,
            business_name=cmd.business_name,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "connect_account_create", {"connect_account_id": account.get("accountId")})
        return account

    async def get_connect_account(self, account_id: str, refresh_url: Optional[str] = None,
                                  return_url: Optional[str] = None) -> Dict[str, Any]:
        account = await run_in_threadpool(self.adapter.get_connect_account, account_id)
        needs_onboarding = self._needs_onboarding(account)
        account["needsOnboarding"] = needs_onboarding
        if not needs_onboarding:
            return account

        refresh_url, return_url = self._onboarding_urls(refresh_url, return_url)
        if refresh_url and return_url:
            link = await run_in_threadpool(self.adapter.create_account_link, account_id, refresh_url, return_url)
            account["onboardingUrl"] = link["url"]
            account["onboardingExpiresAt"] = link["expiresAt"]
        else:
            account["onboardingUrl"] = None
            account["message"] = ONBOARDING_URLS_MISSING
        return account

    async def create_account_link(self, account_id: str, refresh_url: Optional[str] = None,
                                  return_url: Optional[str] = None) -> Dict[str, Any]:
        refresh_url, return_url = self._onboarding_urls(refresh_url, return_url)
        if not (refresh_url and return_url):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ACCOUNT_LINK_URLS_REQUIRED)
        return await run_in_threadpool(self.adapter.create_account_link, account_id, refresh_url, return_url)

    async def create_external_bank_account(self, cmd: BankAccountCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.create_external_bank_account,
            connect_account_id=cmd.connect_account_id,
            account_number=cmd.account_number,
            country=cmd.country,
            routing_number=cmd.routing_number,
            account_holder_name=cmd.account_holder_name,
            currency=cmd.currency,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "bank_account_create", {
            "connect_account_id": cmd.connect_account_id,
            "external_account_id": result.get("externalAccountId"),
        })
        return result

    async def update_external_bank_account(self, cmd: BankAccountCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.update_external_bank_account,
            connect_account_id=cmd.connect_account_id,
            external_account_id=cmd.external_account_id,
            account_number=cmd.account_number,
            country=cmd.country,
            routing_number=cmd.routing_number,
            account_holder_name=cmd.account_holder_name,
            currency=cmd.currency,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "bank_account_replace", {
            "connect_account_id": cmd.connect_account_id,
            "old_external_account_id": cmd.external_account_id,
            "external_account_id": result.get("externalAccountId"),
        })
        return result

    async def list_external_accounts(self, connect_account_id: str) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self.adapter.list_external_accounts, connect_account_id)

    async def delete_external_account(self, connect_account_id: str, external_account_id: str) -> Dict[str, Any]:
        await run_in_threadpool(self.adapter.delete_external_account, connect_account_id, external_account_id)
        audit.log(self.db, "bank_account_delete", {
            "connect_account_id": connect_account_id,
            "external_account_id": external_account_id,
        })
        return {"success": True}

    async def create_transfer(self, cmd: CreateTransferCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.create_transfer,
            amount=cmd.amount,
            currency=cmd.currency,
            destination=cmd.destination,
            description=cmd.description,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "transfer_create", {
            "transfer_id": result.get("id"),
            "connect_account_id": cmd.destination,
            "amount": cmd.amount,
        })
        return result

    async def create_payout(self, cmd: CreatePayoutCommand) -> Dict[str, Any]:
        result = await run_in_threadpool(
            self.adapter.create_payout,
            connect_account_id=cmd.connect_account_id,
            amount=cmd.amount,
            currency=cmd.currency,
            external_account_id=cmd.external_account_id,
            description=cmd.description,
            metadata=cmd.metadata,
        )
        audit.log(self.db, "payout_create", {
            "payout_id": result.get("id"),
            "connect_account_id": cmd.connect_account_id,
            "amount": cmd.amount,
        })
        return result

    async def get_payout_status(self, payout_id: str, connect_account_id: str) -> Dict[str, Any]:
        return await run_in_threadpool(self.adapter.get_payout_status, payout_id, connect_account_id)

    async def list_payouts(self, connect_account_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self.adapter.list_payouts, connect_account_id, limit)

    async def cancel_payout(self, payout_id: str, connect_account_id: Optional[str] = None) -> Dict[str, Any]:
        result = await run_in_threadpool(self.adapter.cancel_payout, payout_id, connect_account_id)
        audit.log(self.db, "payout_cancel", {"payout_id": payout_id, "connect_account_id": connect_account_id})
        return result

    async def get_balance(self, connect_account_id: str) -> Dict[str, Any]:
        return await run_in_threadpool(self.adapter.get_balance, connect_account_id)


class WebhookController:
    """Verifies Stripe webhook deliveries and dispatches each event once"""

    def __init__(self, adapter: Optional[StripeConnectPort] = None, db=None,
                 settings: Optional[StripeSettings] = None):
        self.settings = settings or get_settings()
        self.adapter = adapter or StripeConnectAdapter(settings=self.settings)
        self.db = db if db is not None else get_database()

    async def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not signature:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")
        if not payload:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Raw body is required for webhook verification")

        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                                detail="STRIPE_WEBHOOK_SECRET is required")

        event = self.adapter.construct_webhook_event(payload, signature, secret)
        event_id = event.get("id")
        event_type = event.get("type")

        key = idempotency.generate("webhook", event_id or "")
        if not idempotency.mark_processed(self.db, key):
            logger.info(f"Webhook event {event_id} ({event_type}) already processed")
            return {"received": True, "type": event_type}

        try:
            await dispatch(self.db, event)
        except Exception:
            # let Stripe's retry run the handler again
            idempotency.release(self.db, key)
            raise
        return {"received": True, "type": event_type}
