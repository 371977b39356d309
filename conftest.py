import copy
import os
import re
from typing import Any, Dict, List, Optional

import pytest

# Minimal env before any settings object is built
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy")
os.environ.setdefault("EMAIL_PROVIDER", "none")
os.environ.setdefault("ENVIRONMENT", "test")

from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from baas_gateway.main import app
from baas_gateway.middlewares.jwt_auth import JWTAuthController, get_jwt_auth
from baas_gateway.services.email.email_provider import SendResult
from baas_gateway.src.auth.controller import AuthController
from baas_gateway.src.auth.oauth import OAuthError, OAuthProfile
from baas_gateway.src.auth.otp_service import OtpService
from baas_gateway.src.auth.routes import get_auth_controller
from baas_gateway.src.stripe.adapters import StripeConnectAdapter, StripePaymentAdapter
from baas_gateway.src.stripe.config import StripeSettings
from baas_gateway.src.stripe.controller import (
    StripeConnectController,
    StripePaymentController,
    WebhookController,
)
from baas_gateway.src.stripe.routes import (
    get_connect_controller,
    get_payment_controller,
    get_webhook_controller,
)


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------

class _Result:
    def __init__(self, matched_count=0, modified_count=0, upserted_id=None, inserted_id=None, deleted_count=0):
        self.matched_count = matched_count
        self.modified_count = modified_count
        self.upserted_id = upserted_id
        self.inserted_id = inserted_id
        self.deleted_count = deleted_count


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    # Equality only; None also matches a missing field, as in MongoDB
    return all(doc.get(k) == v for k, v in query.items())


def _apply(doc: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
    for key, value in update.get("$set", {}).items():
        doc[key] = copy.deepcopy(value)
    for key, value in update.get("$inc", {}).items():
        doc[key] = (doc.get(key) or 0) + value
    if inserting:
        for key, value in update.get("$setOnInsert", {}).items():
            doc[key] = copy.deepcopy(value)


class FakeCollection:
    def __init__(self, unique: Optional[str] = None):
        self.docs: List[Dict[str, Any]] = []
        self.unique = unique

    def create_index(self, *args, **kwargs):
        return None

    def find_one(self, query: Optional[Dict[str, Any]] = None):
        for doc in self.docs:
            if _matches(doc, query or {}):
                return copy.deepcopy(doc)
        return None

    def find(self, query: Optional[Dict[str, Any]] = None):
        return [copy.deepcopy(d) for d in self.docs if _matches(d, query or {})]

    def count_documents(self, query: Dict[str, Any]) -> int:
        return len(self.find(query))

    def insert_one(self, doc: Dict[str, Any]):
        if self.unique and any(d.get(self.unique) == doc.get(self.unique) for d in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key error: {self.unique}")
        self.docs.append(copy.deepcopy(doc))
        return _Result(inserted_id=doc.get("id") or doc.get("key") or len(self.docs))

    def delete_one(self, query: Dict[str, Any]):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return _Result(deleted_count=1)
        return _Result(deleted_count=0)

    def _upsert(self, query, update):
        doc = {k: v for k, v in query.items()}
        _apply(doc, update, inserting=True)
        self.docs.append(doc)
        return doc

    def update_one(self, query, update, upsert: bool = False):
        for doc in self.docs:
            if _matches(doc, query):
                _apply(doc, update, inserting=False)
                return _Result(matched_count=1, modified_count=1)
        if upsert:
            self._upsert(query, update)
            return _Result(upserted_id=True)
        return _Result()

    def update_many(self, query, update):
        matched = [d for d in self.docs if _matches(d, query)]
        for doc in matched:
            _apply(doc, update, inserting=False)
        return _Result(matched_count=len(matched), modified_count=len(matched))

    def find_one_and_update(self, query, update, upsert: bool = False, return_document=ReturnDocument.BEFORE):
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                _apply(doc, update, inserting=False)
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        if upsert:
            doc = self._upsert(query, update)
            return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else None
        return None


class FakeDB:
    UNIQUE_KEYS = {"stripe_idempotency_keys": "key"}

    def __init__(self):
        self._collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(unique=self.UNIQUE_KEYS.get(name))
        return self._collections[name]

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


# ---------------------------------------------------------------------------
# Redis (async, decode_responses=True)
# ---------------------------------------------------------------------------

class FakeRedis:
    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def incr(self, key):
        value = int(self.store.get(key, "0")) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.store

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    async def ping(self):
        return True

    async def aclose(self):
        return None


# ---------------------------------------------------------------------------
# E-mail and OAuth
# ---------------------------------------------------------------------------

class RecordingEmailProvider:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def send_email(self, *, to, subject, html, text=None, from_email=None, from_name=None):
        if self.fail:
            return SendResult(ok=False, provider="test", error="smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return SendResult(ok=True, provider="test", message_id=f"msg_{len(self.sent)}")

    def last_otp(self, email: str) -> str:
        for message in reversed(self.sent):
            if message["to"] == email:
                return re.search(r"^\s{4}(\d+)$", message["text"], re.MULTILINE).group(1)
        raise AssertionError(f"no e-mail sent to {email}")


class FakeOAuthClient:
    def __init__(self, provider: str, profile: OAuthProfile):
        self.provider = provider
        self.profile = profile

    def authorization_url(self, state: str) -> str:
        return f"https://oauth.example/{self.provider}/authorize?state={state}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        if code == "bad-code":
            raise OAuthError("Failed to exchange authorization code")
        return self.profile


# ---------------------------------------------------------------------------
# Stripe SDK
# ---------------------------------------------------------------------------

class _FakeResource:
    def __init__(self, name: str, owner: "FakeStripe"):
        self._name = name
        self._owner = owner

    def __getattr__(self, method: str):
        target = f"{self._name}.{method}"

        def call(*args, **kwargs):
            self._owner.calls.append((target, args, kwargs))
            response = self._owner.responses.get(target)
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(*args, **kwargs)
            return copy.deepcopy(response)

        return call


class FakeStripe:
    """Stands in for the ``stripe`` module: ``fake.PaymentIntent.create(...)`` etc.

    Responses are plain dicts keyed by ``"Resource.method"``; an exception instance
    is raised instead of returned.
    """

    def __init__(self):
        self.calls: List[Any] = []
        self.responses: Dict[str, Any] = {}

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        return _FakeResource(name, self)

    def respond(self, target: str, value: Any) -> None:
        self.responses[target] = value

    def calls_to(self, target: str):
        return [(args, kwargs) for t, args, kwargs in self.calls if t == target]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def oauth_profiles():
    return {
        "google": OAuthProfile(provider="google", subject="google-sub-1", email="Oauth.User@Example.com",
                               first_name="Oauth", last_name="User"),
        "facebook": OAuthProfile(provider="facebook", subject="fb-1", email="fb.user@example.com",
                                 first_name="Fb", last_name="User"),
    }


@pytest.fixture
def jwt_auth(fake_db, fake_redis):
    return JWTAuthController(db=fake_db, redis=fake_redis)


@pytest.fixture
def auth_controller(fake_db, fake_redis, jwt_auth, email_provider, oauth_profiles):
    return AuthController(
        db=fake_db,
        redis=fake_redis,
        jwt_auth=jwt_auth,
        otp_service=OtpService(redis=fake_redis, email_provider=email_provider),
        oauth_clients={name: FakeOAuthClient(name, profile) for name, profile in oauth_profiles.items()},
    )


@pytest.fixture
def client(auth_controller, jwt_auth):
    app.dependency_overrides[get_auth_controller] = lambda: auth_controller
    app.dependency_overrides[get_jwt_auth] = lambda: jwt_auth
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def stripe_settings():
    return StripeSettings(
        STRIPE_SECRET_KEY="sk_test_dummy",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        STRIPE_CONNECT_ACCOUNT_TYPE="express",
        STRIPE_CONNECT_REFRESH_URL=None,
        STRIPE_CONNECT_RETURN_URL=None,
    )


@pytest.fixture
def stripe_client(fake_stripe, fake_db, stripe_settings):
    connect_adapter = StripeConnectAdapter(client=fake_stripe, settings=stripe_settings)
    app.dependency_overrides[get_payment_controller] = lambda: StripePaymentController(
        adapter=StripePaymentAdapter(client=fake_stripe), db=fake_db
    )
    app.dependency_overrides[get_connect_controller] = lambda: StripeConnectController(
        adapter=connect_adapter, db=fake_db, settings=stripe_settings
    )
    app.dependency_overrides[get_webhook_controller] = lambda: WebhookController(
        adapter=connect_adapter, db=fake_db, settings=stripe_settings
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
