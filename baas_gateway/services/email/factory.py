from __future__ import annotations
import logging
from typing import Optional

from ...config import get_settings
from .email_provider import EmailProvider
from .mailersend_provider import MailerSendProvider
from .null_provider import NullProvider
from .smtp_provider import SmtpProvider

logger = logging.getLogger(__name__)

_provider_singleton: Optional[EmailProvider] = None


def _create_mailersend(settings) -> EmailProvider:
    return MailerSendProvider(
        api_key=settings.MAILERSEND_API_KEY,
        default_from=settings.EMAIL_FROM,
        default_from_name=settings.EMAIL_FROM_NAME,
    )


def _create_smtp(settings) -> EmailProvider:
    return SmtpProvider(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASS,
        default_from=settings.EMAIL_FROM,
        default_from_name=settings.EMAIL_FROM_NAME,
    )


def get_email_provider() -> EmailProvider:
    global _provider_singleton
    if _provider_singleton is not None:
        return _provider_singleton

    settings = get_settings()
    provider_key = (settings.EMAIL_PROVIDER or "none").lower()

    if provider_key == "mailersend":
        _provider_singleton = _create_mailersend(settings)
    elif provider_key == "smtp":
        _provider_singleton = _create_smtp(settings)
    else:
        if provider_key != "none":
            logger.warning(f"Unknown EMAIL_PROVIDER '{provider_key}', falling back to none")
        _provider_singleton = NullProvider()

    return _provider_singleton
