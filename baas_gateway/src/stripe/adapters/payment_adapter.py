import logging
from typing import Any, Dict, List, Optional

import stripe

from ..client import get_stripe
from ..errors import (
    CustomerNotFoundError,
    PaymentIntentNotFoundError,
    StripeInvalidRequestError,
    StripePaymentError,
)
from ..utils import stripe_id

logger = logging.getLogger(__name__)


def _handle_stripe_error(e: stripe.StripeError, default_message: str) -> StripePaymentError:
    """Translate an SDK error into a payment domain error."""
    message = e.user_message or default_message
    code = e.code
    logger.error(f"{default_message}: {message} (code={code})")
    if code == "resource_missing":
        if "payment_intent" in message:
            return PaymentIntentNotFoundError(getattr(e, "param", None) or "")
        if "customer" in message:
            return CustomerNotFoundError(getattr(e, "param", None) or "")
    if isinstance(e, stripe.InvalidRequestError):
        return StripeInvalidRequestError(message, code)
    if isinstance(e, stripe.CardError):
        return StripePaymentError(message, code, "card_error")
    error_type = getattr(e.error, "type", None) if e.error else None
    return StripePaymentError(message, code, error_type)


class StripePaymentAdapter:
    """Payment intents, refunds, customers and payment methods against the Stripe API.

    All amounts are integer minor units. Every SDK failure leaves this class as a
    StripePaymentError subclass.
    """

    def __init__(self, client=None):
        self.stripe = client or get_stripe()

    def create_payment_intent(self, *, amount: int, currency: str, receipt_email: Optional[str] = None,
                              description: Optional[str] = None, metadata: Optional[Dict[str, str]] = None,
                              payment_method_id: Optional[str] = None, customer_id: Optional[str] = None,
                              payment_method_types: Optional[List[str]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "capture_method": "manual",
            "payment_method_types": payment_method_types or ["card"],
            "metadata": metadata or {},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        if description:
            params["description"] = description
        if payment_method_id:
            params["payment_method"] = payment_method_id
        # Only real Stripe customer ids are forwarded
        if customer_id and customer_id.startswith("cus_"):
            params["customer"] = customer_id

        try:
            intent = self.stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create payment intent")

        logger.info(f"Created payment intent {intent.get('id')} for {amount} {currency}")
        return {
            "id": intent.get("id"),
            "clientSecret": intent.get("client_secret") or "",
            "status": intent.get("status"),
            "amount": intent.get("amount"),
            "currency": intent.get("currency"),
        }

    def confirm_payment_intent(self, payment_intent_id: str, payment_method_id: str) -> Dict[str, Any]:
        try:
            intent = self.stripe.PaymentIntent.confirm(payment_intent_id, payment_method=payment_method_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to confirm payment intent")

        status = intent.get("status")
        if status not in ("succeeded", "requires_capture"):
            raise StripePaymentError(f"Unexpected payment status: {status}", "unexpected_status")
        return {
            "id": intent.get("id"),
            "status": status,
            "message": "Payment authorized, awaiting capture." if status == "requires_capture" else "Payment succeeded.",
        }

    def capture_payment(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            intent = self.stripe.PaymentIntent.capture(payment_intent_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to capture payment")
        return self._intent_summary(intent)

    def cancel_payment(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            intent = self.stripe.PaymentIntent.cancel(payment_intent_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to void payment")
        return self._intent_summary(intent)

    def refund_payment(self, payment_intent_id: str, *, amount: Optional[int] = None, reason: Optional[str] = None,
                       metadata: Optional[Dict[str, str]] = None, reverse_transfer: Optional[bool] = None,
                       refund_application_fee: Optional[bool] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount:
            params["amount"] = amount
        if reason:
            params["reason"] = reason
        if metadata:
            params["metadata"] = metadata
        if reverse_transfer is not None:
            params["reverse_transfer"] = reverse_transfer
        if refund_application_fee is not None:
            params["refund_application_fee"] = refund_application_fee

        try:
            refund = self.stripe.Refund.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to refund payment")

        logger.info(f"Refund {refund.get('id')} created for payment intent {payment_intent_id}")
        return {
            "id": refund.get("id"),
            "amount": refund.get("amount"),
            "currency": refund.get("currency"),
            "status": refund.get("status") or "pending",
            "reason": refund.get("reason"),
            "receiptNumber": refund.get("receipt_number"),
            "metadata": dict(refund.get("metadata") or {}),
        }

    def bulk_refund(self, payment_intent_ids: List[str], *, reason: Optional[str] = None,
                    metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        results = []
        errors = []
        for payment_intent_id in payment_intent_ids:
            try:
                refund = self.refund_payment(payment_intent_id, reason=reason, metadata=metadata)
            except StripePaymentError as e:
                errors.append({"paymentIntentId": payment_intent_id, "error": e.message or "Refund failed"})
                continue
            results.append({
                "paymentIntentId": payment_intent_id,
                "refundId": refund["id"],
                "status": "succeeded",
                "refundAmount": refund["amount"],
                "currency": refund["currency"],
            })
        return {"results": results, "errors": errors}

    def get_payment_intent_status(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            intent = self.stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge", "customer"])
            refund_list = self.stripe.Refund.list(payment_intent=payment_intent_id, limit=100)
            charge_list = self.stripe.Charge.list(payment_intent=payment_intent_id, limit=100)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve payment intent status")

        refunds = refund_list.get("data") or []
        charges = charge_list.get("data") or []

        total_captured = intent.get("amount_received") or 0
        total_refunded = sum(r.get("amount") or 0 for r in refunds)

        return {
            "id": intent.get("id"),
            "status": intent.get("status"),
            "amount": intent.get("amount"),
            "amountReceived": intent.get("amount_received"),
            "currency": intent.get("currency"),
            "customerId": stripe_id(intent.get("customer")),
            "paymentMethodId": stripe_id(intent.get("payment_method")),
            "latestChargeId": stripe_id(intent.get("latest_charge")),
            "created": intent.get("created"),
            "refund_summary": {
                "total_captured": total_captured,
                "total_refunded": total_refunded,
                "refundable_remaining": max(total_captured - total_refunded, 0),
                "currency": intent.get("currency"),
                "is_fully_refunded": total_captured > 0 and total_refunded >= total_captured,
                "is_partially_refunded": 0 < total_refunded < total_captured,
                "refunds": [
                    {
                        "id": r.get("id"),
                        "amount": r.get("amount"),
                        "status": r.get("status"),
                        "reason": r.get("reason"),
                        "created": r.get("created"),
                    }
                    for r in refunds
                ],
            },
            "charges": [
                {
                    "id": c.get("id"),
                    "amount": c.get("amount"),
                    "amountRefunded": c.get("amount_refunded"),
                    "status": c.get("status"),
                    "paid": c.get("paid"),
                    "refunded": c.get("refunded"),
                    "created": c.get("created"),
                }
                for c in charges
            ],
        }

    def create_setup_intent(self, customer_id: str) -> Dict[str, Any]:
        try:
            setup_intent = self.stripe.SetupIntent.create(customer=customer_id, usage="off_session")
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create setup intent")
        return {"id": setup_intent.get("id"), "clientSecret": setup_intent.get("client_secret") or ""}

    def create_customer(self, email: str, name: Optional[str] = None,
                        metadata: Optional[Dict[str, str]] = None) -> str:
        params: Dict[str, Any] = {"email": email, "metadata": metadata or {"notes": "New customer created"}}
        if name:
            params["name"] = name
        try:
            customer = self.stripe.Customer.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create customer")
        logger.info(f"Created Stripe customer {customer.get('id')}")
        return customer.get("id")

    def get_customer_id_by_email(self, email: str) -> Optional[str]:
        try:
            customers = self.stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve customer from Stripe")
        data = customers.get("data") or []
        return data[0].get("id") if data else None

    def get_default_payment_method(self, customer_id: str) -> Optional[Dict[str, Any]]:
        try:
            customer = self.stripe.Customer.retrieve(customer_id)
            if customer.get("deleted"):
                raise CustomerNotFoundError(customer_id)

            invoice_settings = customer.get("invoice_settings") or {}
            payment_method_id = stripe_id(invoice_settings.get("default_payment_method"))
            if not payment_method_id:
                return None

            payment_method = self.stripe.PaymentMethod.retrieve(payment_method_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to retrieve default payment method")

        card = payment_method.get("card")
        if not card:
            return None
        return {
            "paymentMethodId": payment_method.get("id"),
            "customerId": customer_id,
            "card": {
                "brand": card.get("brand"),
                "last4": card.get("last4"),
                "exp_month": card.get("exp_month"),
                "exp_year": card.get("exp_year"),
            },
        }

    def save_payment_method(self, customer_id: str, payment_method_id: str,
                            set_as_default: bool = True) -> Dict[str, Any]:
        try:
            self.stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to attach payment method")

        if set_as_default:
            try:
                self.stripe.Customer.modify(
                    customer_id, invoice_settings={"default_payment_method": payment_method_id}
                )
            except stripe.StripeError as e:
                raise _handle_stripe_error(e, "Failed to set default payment method")

        return {"success": True, "paymentMethodId": payment_method_id, "customerId": customer_id}

    def create_topup(self, *, amount: int, currency: str, source: Optional[str] = None,
                     description: Optional[str] = None, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"amount": amount, "currency": currency}
        if source:
            params["source"] = source
        if description:
            params["description"] = description
        if metadata:
            params["metadata"] = metadata
        try:
            topup = self.stripe.Topup.create(**params)
        except stripe.StripeError as e:
            raise _handle_stripe_error(e, "Failed to create top-up")
        return {
            "id": topup.get("id"),
            "amount": topup.get("amount"),
            "currency": topup.get("currency"),
            "status": topup.get("status"),
        }

    @staticmethod
    def _intent_summary(intent) -> Dict[str, Any]:
        return {
            "id": intent.get("id"),
            "status": intent.get("status"),
            "amount": intent.get("amount"),
            "currency": intent.get("currency"),
        }
