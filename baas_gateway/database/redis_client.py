import logging
from functools import lru_cache

from redis.asyncio import Redis

from ..config import get_settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_redis() -> Redis:
    """Process-wide async Redis client (OTP store, token blocklist, OAuth state)."""
    settings = get_settings()
    logger.debug("🔵 Initializing Redis client...")
    # Use low socket timeouts so failing Redis doesn't block API
    return Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=1,
        socket_timeout=2,
    )

