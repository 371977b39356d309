"""Email one-time passwords kept in Redis.

One pending OTP per email address (``otp:<email>``) holding a bcrypt hash and the
purpose it was issued for. Keys expire after ``OTP_TTL`` minutes and are deleted on
successful verification. Sends are rate limited per address per hour.
"""
import json
import logging
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext

from ...config import get_settings
from ...database.redis_client import get_redis
from ...services.email.factory import get_email_provider
from ...services.email.templates import render_otp_email
from ...utils.helperFunctions import generate_otp
from .schema import OtpPurpose

logger = logging.getLogger(__name__)

otp_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

OTP_KEY_PREFIX = "otp:"
RATE_KEY_PREFIX = "otp:rate:"


class OtpError(Exception):
    pass

class OtpRateLimitError(OtpError):
    pass

class OtpDeliveryError(OtpError):
    pass

class OtpExpiredError(OtpError):
    pass

class OtpMismatchError(OtpError):
    pass


class OtpService:
    def __init__(self, redis=None, email_provider=None):
        self.settings = get_settings()
        self.redis = redis if redis is not None else get_redis()
        self.email_provider = email_provider if email_provider is not None else get_email_provider()
        self.ttl_minutes = self.settings.OTP_TTL

    @staticmethod
    def _key(email: str) -> str:
        return f"{OTP_KEY_PREFIX}{email}"

    async def _check_rate_limit(self, email: str) -> None:
        key = f"{RATE_KEY_PREFIX}{email}"
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, 3600)
        if count > self.settings.OTP_RATE_LIMIT_PER_HOUR:
            raise OtpRateLimitError("OTP rate limit exceeded. Please wait before requesting another code.")

    async def issue(self, email: str, purpose: OtpPurpose, name: Optional[str] = None) -> None:
        """Generate, store and e-mail a fresh OTP, replacing any pending one."""
        await self._check_rate_limit(email)

        otp = generate_otp(self.settings.OTP_LENGTH)
        record = {"hash": otp_context.hash(otp), "purpose": purpose.value}
        await self.redis.set(self._key(email), json.dumps(record), ex=self.ttl_minutes * 60)

        subject, html, text = render_otp_email(otp, purpose.value, self.ttl_minutes, name)
        result = await run_in_threadpool(
            self.email_provider.send_email, to=email, subject=subject, html=html, text=text
        )
        if not result.ok:
            logger.warning(f"OTP email to {email} failed via {result.provider}: {result.error}")
            raise OtpDeliveryError("Failed to send OTP email")
        logger.info(f"OTP ({purpose.value}) sent to {email}")

    async def pending_purpose(self, email: str) -> Optional[OtpPurpose]:
        raw = await self.redis.get(self._key(email))
        if not raw:
            return None
        return OtpPurpose(json.loads(raw)["purpose"])

    async def verify(self, email: str, otp: str) -> OtpPurpose:
        """Consume the pending OTP. Returns the purpose it was issued for."""
        raw = await self.redis.get(self._key(email))
        if not raw:
            raise OtpExpiredError("OTP expired or not found")

        record = json.loads(raw)
        if not otp_context.verify(otp, record["hash"]):
            raise OtpMismatchError("Invalid OTP")

        await self.redis.delete(self._key(email))
        return OtpPurpose(record["purpose"])

    async def discard(self, email: str) -> None:
        await self.redis.delete(self._key(email))
