"""Domain errors raised by the Stripe adapters.

Routes never see ``stripe.StripeError``; adapters translate SDK failures into these
and ``main.py`` maps them onto HTTP responses.
"""
from typing import Optional


class StripePaymentError(Exception):
    def __init__(self, message: str, code: Optional[str] = None, type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.type = type


class StripeInvalidRequestError(StripePaymentError):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, code, "invalid_request_error")


class CustomerNotFoundError(StripePaymentError):
    def __init__(self, customer_id: str):
        super().__init__(f"Customer not found: {customer_id}", "CUSTOMER_NOT_FOUND")
        self.customer_id = customer_id


class PaymentIntentNotFoundError(StripePaymentError):
    def __init__(self, payment_intent_id: str):
        super().__init__(f"Payment intent not found: {payment_intent_id}", "PAYMENT_INTENT_NOT_FOUND")
        self.payment_intent_id = payment_intent_id


class StripeConnectError(Exception):
    def __init__(self, message: str, code: Optional[str] = None, type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.type = type


class StripeConnectAccountNotFoundError(StripeConnectError):
    def __init__(self, account_id: str):
        super().__init__(f"Connect account not found: {account_id}", "ACCOUNT_NOT_FOUND")
        self.account_id = account_id


class StripeWebhookVerificationError(Exception):
    def __init__(self, message: str):
        super().__init__(f"Webhook verification failed: {message}")
        self.message = f"Webhook verification failed: {message}"
