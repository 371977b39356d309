from __future__ import annotations
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from .email_provider import EmailProvider, SendResult

logger = logging.getLogger(__name__)


class SmtpProvider(EmailProvider):
    """Plain SMTP delivery. Port 465 uses implicit TLS, any other port uses STARTTLS."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        default_from: Optional[str],
        default_from_name: Optional[str],
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.default_from = default_from or user
        self.default_from_name = default_from_name

    def _build_message(self, to: str, subject: str, html: str, text: Optional[str], from_email: str, from_name: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{from_name} <{from_email}>" if from_name else from_email
        msg["To"] = to
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")
        return msg

    def send_email(
        self,
        *,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> SendResult:
        if not self.user or not self.password:
            return SendResult(ok=False, provider="smtp", error="SMTP credentials not configured")

        from_email = from_email or self.default_from
        msg = self._build_message(to, subject, html, text, from_email, from_name or self.default_from_name)
        context = ssl.create_default_context()
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, context=context) as smtp:
                    smtp.login(self.user, self.password)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port) as smtp:
                    smtp.ehlo()
                    smtp.starttls(context=context)
                    smtp.ehlo()
                    smtp.login(self.user, self.password)
                    smtp.send_message(msg)
            return SendResult(ok=True, provider="smtp")
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for {self.user}: {e}")
            return SendResult(ok=False, provider="smtp", error=f"SMTP authentication failed: {e}")
        except (smtplib.SMTPException, OSError) as e:
            return SendResult(ok=False, provider="smtp", error=f"SMTP error: {e}")
