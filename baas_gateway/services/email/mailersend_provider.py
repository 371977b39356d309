from __future__ import annotations
import json
from typing import Optional, List, Dict

import httpx

from .email_provider import EmailProvider, SendResult

MAILERSEND_API_BASE = "https://api.mailersend.com/v1"


class MailerSendProvider(EmailProvider):
    """MailerSend transactional email adapter (v1/email endpoint).

    Errors are captured and returned via SendResult without raising.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        default_from: Optional[str],
        default_from_name: Optional[str],
    ) -> None:
        self.api_key = api_key
        self.default_from = default_from
        self.default_from_name = default_from_name

    def _client(self) -> httpx.Client:
        headers = {
            "Authorization": f"Bearer {self.api_key}" if self.api_key else "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        return httpx.Client(base_url=MAILERSEND_API_BASE, headers=headers, timeout=20.0)

    @staticmethod
    def _recipient(email: str, name: Optional[str] = None) -> List[Dict[str, str]]:
        return [{"email": email, **({"name": name} if name else {})}]

    @staticmethod
    def _parse_error(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return f"HTTP {resp.status_code}: {resp.text}"
        if isinstance(data, dict):
            if isinstance(data.get("message"), str):
                return f"HTTP {resp.status_code}: {data['message']}"
            if "errors" in data:
                return f"HTTP {resp.status_code}: {json.dumps(data['errors'])}"
        return f"HTTP {resp.status_code}: {resp.text}"

    def _post_email(self, payload: dict) -> SendResult:
        if not self.api_key:
            return SendResult(ok=False, provider="mailersend", error="Missing MAILERSEND_API_KEY")

        if not payload.get("from", {}).get("email"):
            return SendResult(ok=False, provider="mailersend", error="Missing from email")

        try:
            with self._client() as client:
                resp = client.post("/email", content=json.dumps(payload))
        except httpx.HTTPError as e:
            return SendResult(ok=False, provider="mailersend", error=str(e))

        if 200 <= resp.status_code < 300:
            # MailerSend answers 202 Accepted with the id in a header
            return SendResult(ok=True, provider="mailersend", message_id=resp.headers.get("x-message-id"))
        return SendResult(ok=False, provider="mailersend", error=self._parse_error(resp))

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
        from_email = from_email or self.default_from
        from_name = from_name or self.default_from_name

        payload = {
            "from": {"email": from_email or "", "name": from_name or ""},
            "to": self._recipient(to),
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text

        return self._post_email(payload)
