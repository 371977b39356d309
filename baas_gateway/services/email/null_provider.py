from __future__ import annotations
import logging
from typing import Optional

from .email_provider import EmailProvider, SendResult

logger = logging.getLogger(__name__)

class NullProvider(EmailProvider):
    """No-op provider for local/dev or when EMAIL_PROVIDER=none. Always returns ok=True.
    The subject and recipient are logged so developers can follow the flow.
    """

    def send_email(self, *, to: str, subject: str, html: str, text: Optional[str] = None, from_email: Optional[str] = None, from_name: Optional[str] = None) -> SendResult:
        logger.info(f"[email:none] to={to} subject={subject!r}")
        return SendResult(ok=True, provider="none", message_id="noop")
