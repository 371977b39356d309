import json

import pytest
import stripe

from ....main import app
from .. import idempotency
from ..adapters import StripeConnectAdapter
from ..config import StripeSettings
from ..controller import WebhookController
from ..routes import get_webhook_controller
from ..webhooks import HANDLERS

EVENT = {
    "id": "evt_1",
    "type": "payment_intent.succeeded",
    "data": {"object": {"id": "pi_1", "amount_received": 1000, "currency": "usd", "customer": "cus_1"}},
}
HEADERS = {"Stripe-Signature": "t=1,v1=abc"}


def _post(client, payload=json.dumps(EVENT), headers=HEADERS):
    return client.post("/stripe/webhook", content=payload, headers=headers)


def test_missing_signature(stripe_client):
    resp = _post(stripe_client, headers={})
    assert resp.status_code == 400


def test_empty_body(stripe_client):
    resp = _post(stripe_client, payload=b"")
    assert resp.status_code == 400


def test_signature_verification_failure(stripe_client, fake_stripe):
    fake_stripe.respond("Webhook.construct_event", stripe.SignatureVerificationError("bad", "t=1,v1=abc"))
    resp = _post(stripe_client)
    assert resp.status_code == 400
    assert resp.json()["code"] == "WEBHOOK_VERIFICATION_FAILED"


def test_event_is_dispatched_once(stripe_client, fake_stripe, fake_db):
    fake_stripe.respond("Webhook.construct_event", EVENT)

    resp = _post(stripe_client)
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "type": "payment_intent.succeeded"}

    (_, kwargs), = fake_stripe.calls_to("Webhook.construct_event")
    assert kwargs["payload"] == json.dumps(EVENT).encode()
    assert kwargs["sig_header"] == "t=1,v1=abc"
    assert kwargs["secret"] == "whsec_test"

    audit = fake_db.stripe_audit.find_one({"event_type": "webhook_payment_intent_succeeded"})
    assert audit["payload"]["payment_intent_id"] == "pi_1"

    # Stripe retries deliver the same event id
    assert _post(stripe_client).status_code == 200
    assert fake_db.stripe_audit.count_documents({"event_type": "webhook_payment_intent_succeeded"}) == 1


def test_failed_handler_releases_event_for_retry(stripe_client, fake_stripe, fake_db, monkeypatch):
    fake_stripe.respond("Webhook.construct_event", EVENT)

    async def broken(db, event):
        raise RuntimeError("downstream unavailable")

    original = HANDLERS["payment_intent.succeeded"]
    monkeypatch.setitem(HANDLERS, "payment_intent.succeeded", broken)
    with pytest.raises(RuntimeError):
        _post(stripe_client)
    assert fake_db.stripe_idempotency_keys.count_documents({}) == 0

    monkeypatch.setitem(HANDLERS, "payment_intent.succeeded", original)
    assert _post(stripe_client).status_code == 200
    assert fake_db.stripe_audit.count_documents({"event_type": "webhook_payment_intent_succeeded"}) == 1


def test_claimed_event_is_not_dispatched_again(stripe_client, fake_stripe, fake_db):
    fake_stripe.respond("Webhook.construct_event", EVENT)
    # another worker already holds the key for this event
    fake_db.stripe_idempotency_keys.insert_one({"key": idempotency.generate("webhook", "evt_1")})

    assert _post(stripe_client).status_code == 200
    assert fake_db.stripe_audit.count_documents({}) == 0


def test_unhandled_event_is_acknowledged(stripe_client, fake_stripe, fake_db):
    fake_stripe.respond("Webhook.construct_event", {"id": "evt_2", "type": "customer.created", "data": {"object": {}}})
    resp = _post(stripe_client)
    assert resp.json() == {"received": True, "type": "customer.created"}
    assert fake_db.stripe_audit.find() == []


def test_payout_failure_is_audited(stripe_client, fake_stripe, fake_db):
    fake_stripe.respond("Webhook.construct_event", {
        "id": "evt_3", "type": "payout.failed", "account": "acct_1",
        "data": {"object": {"id": "po_1", "failure_code": "account_closed", "failure_message": "closed"}},
    })
    _post(stripe_client)
    audit = fake_db.stripe_audit.find_one({"event_type": "webhook_payout_failed"})
    assert audit["status"] == "failed"
    assert audit["payload"]["connect_account_id"] == "acct_1"


@pytest.fixture
def unconfigured_webhook(stripe_client, fake_stripe, fake_db):
    settings = StripeSettings(STRIPE_SECRET_KEY="sk_test_dummy", STRIPE_WEBHOOK_SECRET=None)
    app.dependency_overrides[get_webhook_controller] = lambda: WebhookController(
        adapter=StripeConnectAdapter(client=fake_stripe, settings=settings), db=fake_db, settings=settings
    )
    return stripe_client


def test_missing_webhook_secret(unconfigured_webhook, fake_stripe):
    resp = _post(unconfigured_webhook)
    assert resp.status_code == 500
    assert fake_stripe.calls == []
