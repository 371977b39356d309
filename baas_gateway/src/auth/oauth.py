"""Google and Facebook authorization-code flows.

Each client builds the consent-page URL and turns the callback ``code`` into an
:class:`OAuthProfile`. Google identities come from the verified ``id_token``;
Facebook identities come from the Graph API ``/me`` endpoint.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol
from urllib.parse import urlencode

import httpx
from fastapi.concurrency import run_in_threadpool
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from ...config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class OAuthProfile:
    provider: str
    subject: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class OAuthError(Exception):
    pass

class OAuthNotConfiguredError(OAuthError):
    pass


class OAuthClient(Protocol):
    provider: str

    def authorization_url(self, state: str) -> str:
        ...

    async def fetch_profile(self, code: str) -> OAuthProfile:
        ...


class GoogleOAuthClient:
    provider = "google"
    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    ISSUERS = {"accounts.google.com", "https://accounts.google.com"}

    def __init__(self, client_id: Optional[str], client_secret: Optional[str], redirect_uri: Optional[str]):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def _require_config(self) -> None:
        if not (self.client_id and self.client_secret and self.redirect_uri):
            raise OAuthNotConfiguredError("Google auth not configured")

    def authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        self._require_config()
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.post(self.TOKEN_URL, data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                })
        except httpx.HTTPError as e:
            logger.error(f"Google code exchange request failed: {str(e)}")
            raise OAuthError("Google code exchange failed")
        if resp.status_code != 200:
            logger.error(f"Google code exchange failed: HTTP {resp.status_code} {resp.text[:200]}")
            raise OAuthError("Google code exchange failed")

        try:
            id_token_str = resp.json().get("id_token")
        except ValueError:
            raise OAuthError("Malformed Google token response")
        if not id_token_str:
            raise OAuthError("Google response missing id_token")

        try:
            payload = await run_in_threadpool(
                google_id_token.verify_oauth2_token,
                id_token_str,
                google_requests.Request(),
                self.client_id,
                clock_skew_in_seconds=300,
            )
        except ValueError as e:
            logger.error(f"Google token verification failed: {str(e)}")
            raise OAuthError("Invalid Google token")

        if payload.get("iss") not in self.ISSUERS:
            raise OAuthError("Invalid token issuer")
        if not payload.get("email_verified", False):
            raise OAuthError("Google email not verified")
        if not payload.get("email"):
            raise OAuthError("Google token missing e-mail")

        return OAuthProfile(
            provider=self.provider,
            subject=payload["sub"],
            email=payload["email"],
            first_name=payload.get("given_name"),
            last_name=payload.get("family_name"),
        )


class FacebookOAuthClient:
    provider = "facebook"

    def __init__(self, app_id: Optional[str], app_secret: Optional[str], redirect_uri: Optional[str], graph_version: str = "v19.0"):
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri
        self.auth_url = f"https://www.facebook.com/{graph_version}/dialog/oauth"
        self.graph_url = f"https://graph.facebook.com/{graph_version}"

    def _require_config(self) -> None:
        if not (self.app_id and self.app_secret and self.redirect_uri):
            raise OAuthNotConfiguredError("Facebook auth not configured")

    def authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.app_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "email,public_profile",
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        self._require_config()
        try:
            async with httpx.AsyncClient(base_url=self.graph_url, timeout=10.0) as client:
                token_resp = await client.get("/oauth/access_token", params={
                    "client_id": self.app_id,
                    "client_secret": self.app_secret,
                    "redirect_uri": self.redirect_uri,
                    "code": code,
                })
                if token_resp.status_code != 200:
                    logger.error(f"Facebook code exchange failed: HTTP {token_resp.status_code} {token_resp.text[:200]}")
                    raise OAuthError("Facebook code exchange failed")

                access_token = token_resp.json().get("access_token")
                me_resp = await client.get("/me", params={
                    "fields": "id,email,first_name,last_name",
                    "access_token": access_token,
                })
            if me_resp.status_code != 200:
                raise OAuthError("Facebook profile lookup failed")
            me = me_resp.json()
        except httpx.HTTPError as e:
            logger.error(f"Facebook request failed: {str(e)}")
            raise OAuthError("Facebook code exchange failed")
        except ValueError:
            raise OAuthError("Malformed Facebook response")

        if not me.get("email"):
            raise OAuthError("Facebook account has no e-mail")

        return OAuthProfile(
            provider=self.provider,
            subject=str(me["id"]),
            email=me["email"],
            first_name=me.get("first_name"),
            last_name=me.get("last_name"),
        )


def build_oauth_clients() -> Dict[str, OAuthClient]:
    settings = get_settings()
    return {
        "google": GoogleOAuthClient(
            settings.GOOGLE_CLIENT_ID,
            settings.GOOGLE_CLIENT_SECRET,
            settings.GOOGLE_CALLBACK_URL,
        ),
        "facebook": FacebookOAuthClient(
            settings.FACEBOOK_APP_ID,
            settings.FACEBOOK_APP_SECRET,
            settings.FACEBOOK_CALLBACK_URL,
            settings.FACEBOOK_GRAPH_VERSION,
        ),
    }
