import logging
from typing import Any, Awaitable, Callable, Dict

from .. import audit
from ..utils import stripe_id

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any]], Awaitable[None]]

HANDLERS: Dict[str, Handler] = {}


def handles(event_type: str):
    """Register a coroutine as the handler for one Stripe event type."""
    def decorator(func: Handler) -> Handler:
        HANDLERS[event_type] = func
        return func
    return decorator


def _object(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


@handles("payment_intent.succeeded")
async def handle_payment_intent_succeeded(db, event: Dict[str, Any]):
    intent = _object(event)
    logger.info(f"Payment intent {intent.get('id')} succeeded ({intent.get('amount_received')} {intent.get('currency')})")
    audit.log(db, "webhook_payment_intent_succeeded", {
        "event_id": event.get("id"),
        "payment_intent_id": intent.get("id"),
        "amount_received": intent.get("amount_received"),
        "customer_id": stripe_id(intent.get("customer")),
    })


@handles("payment_intent.payment_failed")
async def handle_payment_intent_failed(db, event: Dict[str, Any]):
    intent = _object(event)
    error = intent.get("last_payment_error") or {}
    logger.warning(f"Payment intent {intent.get('id')} failed: {error.get('message')}")
    audit.log(db, "webhook_payment_intent_failed", {
        "event_id": event.get("id"),
        "payment_intent_id": intent.get("id"),
        "failure_code": error.get("code"),
    }, "failed", error.get("message") or "")


@handles("payout.paid")
async def handle_payout_paid(db, event: Dict[str, Any]):
    payout = _object(event)
    logger.info(f"Payout {payout.get('id')} paid for account {event.get('account')}")
    audit.log(db, "webhook_payout_paid", {
        "event_id": event.get("id"),
        "payout_id": payout.get("id"),
        "connect_account_id": event.get("account"),
        "amount": payout.get("amount"),
    })


@handles("payout.failed")
async def handle_payout_failed(db, event: Dict[str, Any]):
    payout = _object(event)
    logger.warning(f"Payout {payout.get('id')} failed: {payout.get('failure_code')} {payout.get('failure_message')}")
    audit.log(db, "webhook_payout_failed", {
        "event_id": event.get("id"),
        "payout_id": payout.get("id"),
        "connect_account_id": event.get("account"),
        "failure_code": payout.get("failure_code"),
    }, "failed", payout.get("failure_message") or "")


async def dispatch(db, event: Dict[str, Any]) -> bool:
    """Run the handler for ``event``; returns False for types nobody handles."""
    handler = HANDLERS.get(event.get("type"))
    if handler is None:
        logger.debug(f"Unhandled Stripe event type {event.get('type')}")
        return False
    await handler(db, event)
    return True
