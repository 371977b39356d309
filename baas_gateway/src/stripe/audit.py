import logging
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

COLLECTION_NAME = "stripe_audit"


def log(db, event_type: str, payload: dict, status: str = "ok", note: str = ""):
    """Generic audit logger for Stripe side effects.

    payload can include identifiers like:
    - payment_intent_id / refund_id
    - connect_account_id / external_account_id
    - payout_id / transfer_id
    - event_id for webhook deliveries
    """
    doc = {
        "event_type": event_type,
        "payload": payload,
        "status": status,
        "note": note,
        "created_at": datetime.now(timezone.utc),
    }
    try:
        db[COLLECTION_NAME].insert_one(doc)
    except PyMongoError as e:
        # Audit failures never fail the caller
        logger.warning(f"Stripe audit insert failed for {event_type}: {e}")
