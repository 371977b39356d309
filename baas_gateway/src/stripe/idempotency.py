import hashlib
from datetime import datetime, timedelta, timezone

from pymongo.errors import DuplicateKeyError

COLLECTION_NAME = "stripe_idempotency_keys"
TTL_SECONDS = 24 * 3600


def generate(scope: str, *parts: str) -> str:
    base = ":".join([scope, *parts])
    return hashlib.sha256(base.encode()).hexdigest()


def mark_processed(db, key: str) -> bool:
    """Record ``key``; returns False when another delivery already claimed it."""
    try:
        db[COLLECTION_NAME].insert_one({
            "key": key,
            "expire_at": datetime.now(timezone.utc) + timedelta(seconds=TTL_SECONDS),
        })
    except DuplicateKeyError:
        return False
    return True


def release(db, key: str) -> None:
    db[COLLECTION_NAME].delete_one({"key": key})
