from typing import Any, Dict, List, Optional, Protocol


class StripePaymentPort(Protocol):
    """Payments side of Stripe: intents, refunds, customers, payment methods, top-ups.

    Amounts are integer minor units (cents).
    """

    def create_payment_intent(self, *, amount: int, currency: str, receipt_email: Optional[str] = None,
                              description: Optional[str] = None, metadata: Optional[Dict[str, str]] = None,
                              payment_method_id: Optional[str] = None, customer_id: Optional[str] = None,
                              payment_method_types: Optional[List[str]] = None) -> Dict[str, Any]: ...

    def confirm_payment_intent(self, payment_intent_id: str, payment_method_id: str) -> Dict[str, Any]: ...

    def capture_payment(self, payment_intent_id: str) -> Dict[str, Any]: ...

    def cancel_payment(self, payment_intent_id: str) -> Dict[str, Any]: ...

    def refund_payment(self, payment_intent_id: str, *, amount: Optional[int] = None, reason: Optional[str] = None,
                       metadata: Optional[Dict[str, str]] = None, reverse_transfer: Optional[bool] = None,
                       refund_application_fee: Optional[bool] = None) -> Dict[str, Any]: ...

    def bulk_refund(self, payment_intent_ids: List[str], *, reason: Optional[str] = None,
                    metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def get_payment_intent_status(self, payment_intent_id: str) -> Dict[str, Any]: ...

    def create_setup_intent(self, customer_id: str) -> Dict[str, Any]: ...

    def create_customer(self, email: str, name: Optional[str] = None,
                        metadata: Optional[Dict[str, str]] = None) -> str: ...

    def get_customer_id_by_email(self, email: str) -> Optional[str]: ...

    def get_default_payment_method(self, customer_id: str) -> Optional[Dict[str, Any]]: ...

    def save_payment_method(self, customer_id: str, payment_method_id: str,
                            set_as_default: bool = True) -> Dict[str, Any]: ...

    def create_topup(self, *, amount: int, currency: str, source: Optional[str] = None,
                     description: Optional[str] = None, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...


class StripeConnectPort(Protocol):
    """Connect side of Stripe: accounts, onboarding, bank accounts, transfers, payouts, webhooks."""

    def create_connect_account(self, *, email: str, country: str, business_name: Optional[str] = None,
                               metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def get_connect_account(self, account_id: str) -> Dict[str, Any]: ...

    def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> Dict[str, Any]: ...

    def create_external_bank_account(self, *, connect_account_id: str, account_number: str, country: str,
                                     routing_number: Optional[str] = None, account_holder_name: Optional[str] = None,
                                     currency: Optional[str] = None,
                                     metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def list_external_accounts(self, connect_account_id: str) -> List[Dict[str, Any]]: ...

    def delete_external_account(self, connect_account_id: str, external_account_id: str) -> None: ...

    def update_external_bank_account(self, *, connect_account_id: str, external_account_id: str,
                                     account_number: str, country: str, routing_number: Optional[str] = None,
                                     account_holder_name: Optional[str] = None, currency: Optional[str] = None,
                                     metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def create_transfer(self, *, amount: int, currency: str, destination: str, description: Optional[str] = None,
                        metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def create_payout(self, *, connect_account_id: str, amount: int, currency: str,
                      external_account_id: Optional[str] = None, description: Optional[str] = None,
                      metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]: ...

    def get_payout_status(self, payout_id: str, connect_account_id: str) -> Dict[str, Any]: ...

    def list_payouts(self, connect_account_id: str, limit: int = 10) -> List[Dict[str, Any]]: ...

    def cancel_payout(self, payout_id: str, connect_account_id: Optional[str] = None) -> Dict[str, Any]: ...

    def get_balance(self, connect_account_id: str) -> Dict[str, Any]: ...

    def construct_webhook_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]: ...
