import logging
from typing import Any, Dict, List, Optional

import stripe

from ..client import get_stripe
from ..config import StripeSettings, get_settings
from ..errors import StripeConnectAccountNotFoundError, StripeConnectError, StripeWebhookVerificationError
from ..utils import currency_for_country, stripe_id

logger = logging.getLogger(__name__)


def _handle_stripe_error(e: stripe.StripeError, default_message: str,
                         account_id: Optional[str] = None) -> StripeConnectError:
    message = e.user_message or default_message
    logger.error(f"{default_message}: {message} (code={e.code})")
    # bank and external account misses also carry resource_missing
    if e.code == "resource_missing" and (
        getattr(e, "param", None) == "account" or "No such account" in message
    ):
        return StripeConnectAccountNotFoundError(account_id or getattr(e, "param", None) or "")
    if isinstance(e, stripe.InvalidRequestError):
        return StripeConnectError(message, e.code, "invalid_request_error")
    error_type = getattr(e.error, "type", None) if e.error else None
    return StripeConnectError(message, e.code, error_type)


def _bank_account(account) -> Dict[str, Any]:
    return {
        "id": account.get("id"),
        "bankName": account.get("bank_name"),
        "last4": account.get("last4") or "",
        "routingNumber": account.get("routing_number"),
        "accountHolderName": account.get("account_holder_name"),
        "currency": account.get("currency") or "usd",
        "country": account.get("country") or "US",
        "status": account.get("status") or "new",
        "defaultForCurrency": bool(account.get("default_for_currency")),
    }


def _payout(payout) -> Dict[str, Any]:
    return {
        "id": payout.get("id"),
        "amount": payout.get("amount"),
        "currency": payout.get("currency"),
        "status": payout.get("status"),
        "arrivalDate": payout.get("arrival_date") or 0,
    }


class StripeConnectAdapter:
    """Connect accounts, onboarding links, bank accounts, transfers and payouts.

    Calls that act on a connected account run with ``stripe_account`` set so Stripe
    scopes them to that account.
    """

    def __init__(self, client=None, settings: Optional[StripeSettings] = None):
        self.stripe = client or get_stripe()
        self.settings = settings or get_settings()

    def create_connect_account(self, *, email: str, country: str, business_name: Optional[str] = None,
                               metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        account_type = self.settings.STRIPE_CONNECT_ACCOUNT_TYPE
        params: Dict[str, Any] = {
            "type": account_type,
            "country": country.upper(),
            "email": email,
            "metadata": metadata or {},
        }
        name = business_name or self.settings.STRIPE_DEFAULT_BUSINESS_NAME
        if name:
            params["business_profile"] = {"name": name}
        if account_type == "custom":
            params["capabilities"] = {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            }

        try:
            account = self.stripe.Account.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create Connect account")

        logger.info(f"Created {account_type} Connect account {account.get('id')} ({params['country']})")
        return {
            "accountId": account.get("id"),
            "country": account.get("country") or "US",
            "type": account.get("type"),
            "chargesEnabled": bool(account.get("charges_enabled")),
            "payoutsEnabled": bool(account.get("payouts_enabled")),
            "detailsSubmitted": bool(account.get("details_submitted")),
        }

    def get_connect_account(self, account_id: str) -> Dict[str, Any]:
        try:
            account = self.stripe.Account.retrieve(account_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve Connect account", account_id)

        return {
            "id": account.get("id"),
            "country": account.get("country") or "US",
            "type": account.get("type"),
            "chargesEnabled": bool(account.get("charges_enabled")),
            "payoutsEnabled": bool(account.get("payouts_enabled")),
            "detailsSubmitted": bool(account.get("details_submitted")),
            "businessProfile": account.get("business_profile"),
            "metadata": dict(account.get("metadata") or {}),
        }

    def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> Dict[str, Any]:
        try:
            link = self.stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create account link", account_id)
        return {"url": link.get("url"), "expiresAt": link.get("expires_at") or 0}

    def create_external_bank_account(self, *, connect_account_id: str, account_number: str, country: str,
                                     routing_number: Optional[str] = None, account_holder_name: Optional[str] = None,
                                     currency: Optional[str] = None,
                                     metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        bank_account: Dict[str, Any] = {
            "object": "bank_account",
            "country": country.upper(),
            "currency": currency or currency_for_country(country),
            "account_number": account_number,
            "account_holder_type": "individual",
        }
        if routing_number:
            bank_account["routing_number"] = routing_number
        if account_holder_name:
            bank_account["account_holder_name"] = account_holder_name

        try:
            external = self.stripe.Account.create_external_account(
                connect_account_id, external_account=bank_account, metadata=metadata or {}
            )
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create external bank account", connect_account_id)

        logger.info(f"Added bank account {external.get('id')} to {connect_account_id}")
        return {
            "externalAccountId": external.get("id"),
            "last4": external.get("last4") or "",
            "bankName": external.get("bank_name"),
            "currency": external.get("currency") or bank_account["currency"],
            "country": external.get("country") or bank_account["country"],
            "status": external.get("status") or "new",
        }

    def list_external_accounts(self, connect_account_id: str) -> List[Dict[str, Any]]:
        try:
            accounts = self.stripe.Account.list_external_accounts(connect_account_id, object="bank_account")
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to list external accounts", connect_account_id)
        return [_bank_account(a) for a in accounts.get("data") or []]

    def delete_external_account(self, connect_account_id: str, external_account_id: str) -> None:
        try:
            self.stripe.Account.delete_external_account(connect_account_id, external_account_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to delete external account", connect_account_id)
        logger.info(f"Removed bank account {external_account_id} from {connect_account_id}")

    def update_external_bank_account(self, *, connect_account_id: str, external_account_id: str,
                                     account_number: str, country: str, routing_number: Optional[str] = None,
                                     account_holder_name: Optional[str] = None, currency: Optional[str] = None,
                                     metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Stripe bank accounts are immutable: add the replacement, then drop the old one."""
        new_account = self.create_external_bank_account(
            connect_account_id=connect_account_id,
            account_number=account_number,
            country=country,
            routing_number=routing_number,
            account_holder_name=account_holder_name,
            currency=currency,
            metadata=metadata,
        )
        try:
            self.delete_external_account(connect_account_id, external_account_id)
        except StripeConnectError as e:
            logger.warning(f"Failed to delete old external account {external_account_id}: {e.message}")
        return new_account

    def create_transfer(self, *, amount: int, currency: str, destination: str, description: Optional[str] = None,
                        metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "destination": destination,
            "metadata": metadata or {},
        }
        if description:
            params["description"] = description
        try:
            transfer = self.stripe.Transfer.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create transfer", destination)

        logger.info(f"Transfer {transfer.get('id')} of {amount} {currency} to {destination}")
        return {
            "id": transfer.get("id"),
            "amount": transfer.get("amount"),
            "currency": transfer.get("currency"),
            "destination": stripe_id(transfer.get("destination")),
        }

    def create_payout(self, *, connect_account_id: str, amount: int, currency: str,
                      external_account_id: Optional[str] = None, description: Optional[str] = None,
                      metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"amount": amount, "currency": currency, "metadata": metadata or {}}
        if external_account_id:
            params["destination"] = external_account_id
        if description:
            params["description"] = description
        try:
            payout = self.stripe.Payout.create(stripe_account=connect_account_id, **params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create payout", connect_account_id)

        logger.info(f"Payout {payout.get('id')} of {amount} {currency} for {connect_account_id}")
        return _payout(payout)

    def get_payout_status(self, payout_id: str, connect_account_id: str) -> Dict[str, Any]:
        try:
            payout = self.stripe.Payout.retrieve(payout_id, stripe_account=connect_account_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve payout status", connect_account_id)
        result = _payout(payout)
        result["description"] = payout.get("description")
        result["metadata"] = dict(payout.get("metadata") or {})
        return result

    def list_payouts(self, connect_account_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            payouts = self.stripe.Payout.list(limit=limit or 10, stripe_account=connect_account_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to list payouts", connect_account_id)

        items = []
        for payout in payouts.get("data") or []:
            item = _payout(payout)
            item["description"] = payout.get("description")
            item["metadata"] = dict(payout.get("metadata") or {})
            item["created"] = payout.get("created")
            items.append(item)
        return items

    def cancel_payout(self, payout_id: str, connect_account_id: Optional[str] = None) -> Dict[str, Any]:
        kwargs = {"stripe_account": connect_account_id} if connect_account_id else {}
        try:
            payout = self.stripe.Payout.cancel(payout_id, **kwargs)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to cancel payout", connect_account_id)

        logger.info(f"Cancelled payout {payout_id}")
        return {
            "id": payout.get("id"),
            "status": payout.get("status"),
            "amount": payout.get("amount"),
            "currency": payout.get("currency"),
        }

    def get_balance(self, connect_account_id: str) -> Dict[str, Any]:
        try:
            balance = self.stripe.Balance.retrieve(stripe_account=connect_account_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve Connect balance", connect_account_id)
        return {
            "available": [{"amount": b.get("amount"), "currency": b.get("currency")}
                          for b in balance.get("available") or []],
            "pending": [{"amount": b.get("amount"), "currency": b.get("currency")}
                        for b in balance.get("pending") or []],
        }

    def construct_webhook_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        try:
            return self.stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise StripeWebhookVerificationError(str(e))
