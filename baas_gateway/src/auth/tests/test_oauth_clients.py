from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import HTTPException

from .. import oauth
from ..controller import AuthController
from ..oauth import FacebookOAuthClient, GoogleOAuthClient, OAuthError
from ..otp_service import OtpService

REAL_ASYNC_CLIENT = httpx.AsyncClient


def google():
    return GoogleOAuthClient("google-client", "google-secret", "https://api.example/auth/google/callback")


def facebook():
    return FacebookOAuthClient("fb-app", "fb-secret", "https://api.example/auth/facebook/callback")


@pytest.fixture
def route_http(monkeypatch):
    def _route(handler):
        monkeypatch.setattr(
            oauth.httpx, "AsyncClient",
            lambda **kwargs: REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs),
        )
    return _route


def refuse(request):
    raise httpx.ConnectError("connection refused", request=request)


def html_page(request):
    return httpx.Response(200, text="<html>maintenance</html>")


@pytest.mark.asyncio
async def test_google_unreachable(route_http):
    route_http(refuse)
    with pytest.raises(OAuthError):
        await google().fetch_profile("code")


@pytest.mark.asyncio
async def test_google_non_json_token_response(route_http):
    route_http(html_page)
    with pytest.raises(OAuthError):
        await google().fetch_profile("code")


@pytest.mark.asyncio
async def test_google_rejected_code(route_http):
    route_http(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    with pytest.raises(OAuthError):
        await google().fetch_profile("code")


@pytest.mark.asyncio
async def test_facebook_timeout(route_http):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    route_http(slow)
    with pytest.raises(OAuthError):
        await facebook().fetch_profile("code")


@pytest.mark.asyncio
async def test_facebook_non_json_profile(route_http):
    def handler(request):
        if request.url.path.endswith("/oauth/access_token"):
            return httpx.Response(200, json={"access_token": "fb-token"})
        return html_page(request)

    route_http(handler)
    with pytest.raises(OAuthError):
        await facebook().fetch_profile("code")


@pytest.mark.asyncio
async def test_facebook_profile(route_http):
    def handler(request):
        if request.url.path.endswith("/oauth/access_token"):
            return httpx.Response(200, json={"access_token": "fb-token"})
        assert request.url.params["access_token"] == "fb-token"
        return httpx.Response(200, json={"id": 42, "email": "fb@example.com", "first_name": "F"})

    route_http(handler)
    profile = await facebook().fetch_profile("code")
    assert profile.subject == "42"
    assert profile.email == "fb@example.com"


@pytest.mark.asyncio
async def test_callback_answers_401_when_provider_unreachable(route_http, fake_db, fake_redis, jwt_auth, email_provider):
    auth = AuthController(
        db=fake_db,
        redis=fake_redis,
        jwt_auth=jwt_auth,
        otp_service=OtpService(redis=fake_redis, email_provider=email_provider),
        oauth_clients={"google": google()},
    )
    url = await auth.oauth_authorization_url("google")
    state = parse_qs(urlparse(url).query)["state"][0]

    route_http(refuse)
    with pytest.raises(HTTPException) as exc_info:
        await auth.oauth_callback("google", "code", state)
    assert exc_info.value.status_code == 401
    assert fake_db.users.find() == []
