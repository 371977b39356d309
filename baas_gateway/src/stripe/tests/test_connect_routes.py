import stripe

ACCOUNT = {
    "id": "acct_1",
    "country": "DE",
    "type": "express",
    "charges_enabled": False,
    "payouts_enabled": False,
    "details_submitted": False,
    "business_profile": {"name": "Shop"},
    "metadata": {},
}


def test_create_connect_account(stripe_client, fake_stripe, fake_db):
    fake_stripe.respond("Account.create", ACCOUNT)
    resp = stripe_client.post("/stripe/connect/account", json={
        "country": "de", "email": "seller@example.com", "businessName": "Shop",
    })
    assert resp.status_code == 201
    assert resp.json() == {
        "accountId": "acct_1", "country": "DE", "type": "express",
        "chargesEnabled": False, "payoutsEnabled": False, "detailsSubmitted": False,
    }
    (_, kwargs), = fake_stripe.calls_to("Account.create")
    assert kwargs["type"] == "express"
    assert kwargs["country"] == "DE"
    assert kwargs["business_profile"] == {"name": "Shop"}
    assert "capabilities" not in kwargs
    assert fake_db.stripe_audit.find_one({"event_type": "connect_account_create"}) is not None


def test_custom_accounts_request_capabilities(stripe_settings, fake_stripe):
    from ..adapters import StripeConnectAdapter

    settings = stripe_settings.model_copy(update={"STRIPE_CONNECT_ACCOUNT_TYPE": "custom"})
    fake_stripe.respond("Account.create", dict(ACCOUNT, type="custom"))
    StripeConnectAdapter(client=fake_stripe, settings=settings).create_connect_account(
        email="seller@example.com", country="us"
    )
    (_, kwargs), = fake_stripe.calls_to("Account.create")
    assert kwargs["capabilities"] == {"card_payments": {"requested": True}, "transfers": {"requested": True}}


def test_get_account_with_onboarding_link(stripe_client, fake_stripe):
    fake_stripe.respond("Account.retrieve", ACCOUNT)
    fake_stripe.respond("AccountLink.create", {"url": "https://connect.stripe.com/setup/x", "expires_at": 1700000300})

    resp = stripe_client.get("/stripe/connect/account/acct_1", params={
        "refreshUrl": "https://app.example/refresh", "returnUrl": "https://app.example/return",
    })

    body = resp.json()
    assert body["needsOnboarding"] is True
    assert body["onboardingUrl"] == "https://connect.stripe.com/setup/x"
    assert body["onboardingExpiresAt"] == 1700000300
    (_, kwargs), = fake_stripe.calls_to("AccountLink.create")
    assert kwargs["type"] == "account_onboarding"


def test_get_account_without_onboarding_urls(stripe_client, fake_stripe):
    fake_stripe.respond("Account.retrieve", ACCOUNT)
    body = stripe_client.get("/stripe/connect/account/acct_1").json()
    assert body["onboardingUrl"] is None
    assert "STRIPE_CONNECT_REFRESH_URL" in body["message"]
    assert fake_stripe.calls_to("AccountLink.create") == []


def test_get_onboarded_account(stripe_client, fake_stripe):
    fake_stripe.respond("Account.retrieve", dict(
        ACCOUNT, charges_enabled=True, payouts_enabled=True, details_submitted=True,
    ))
    body = stripe_client.get("/stripe/connect/account/acct_1").json()
    assert body["needsOnboarding"] is False
    assert "onboardingUrl" not in body


def test_missing_account_is_404(stripe_client, fake_stripe):
    fake_stripe.respond(
        "Account.retrieve",
        stripe.InvalidRequestError("No such account: 'acct_x'", "account", code="resource_missing"),
    )
    resp = stripe_client.get("/stripe/connect/account/acct_x")
    assert resp.status_code == 404
    assert resp.json()["code"] == "ACCOUNT_NOT_FOUND"


def test_account_link_requires_urls(stripe_client, fake_stripe):
    resp = stripe_client.post("/stripe/connect/account/acct_1/link")
    assert resp.status_code == 400

    fake_stripe.respond("AccountLink.create", {"url": "https://connect.stripe.com/setup/y", "expires_at": 5})
    resp = stripe_client.post("/stripe/connect/account/acct_1/link", json={
        "refreshUrl": "https://app.example/refresh", "returnUrl": "https://app.example/return",
    })
    assert resp.json() == {"url": "https://connect.stripe.com/setup/y", "expiresAt": 5}


def test_add_bank_account_picks_currency_from_country(stripe_client, fake_stripe):
    fake_stripe.respond("Account.create_external_account", {
        "id": "ba_1", "last4": "3000", "bank_name": "Commerzbank", "currency": "eur", "country": "DE", "status": "new",
    })
    resp = stripe_client.post("/stripe/payouts/add-bank-accounts", json={
        "connectAccountId": "acct_1", "bankAccountNumber": "DE89370400440532013000", "country": "de",
    })
    assert resp.status_code == 201
    assert resp.json()["externalAccountId"] == "ba_1"
    (args, kwargs), = fake_stripe.calls_to("Account.create_external_account")
    assert args == ("acct_1",)
    assert kwargs["external_account"] == {
        "object": "bank_account",
        "country": "DE",
        "currency": "eur",
        "account_number": "DE89370400440532013000",
        "account_holder_type": "individual",
    }


def test_replace_bank_account(stripe_client, fake_stripe):
    fake_stripe.respond("Account.create_external_account", {"id": "ba_new", "last4": "6789"})
    resp = stripe_client.patch("/stripe/payouts/add-bank-accounts", json={
        "connectAccountId": "acct_1",
        "oldExternalAccountId": "ba_old",
        "bankAccountNumber": "000123456789",
        "routingNumber": "110000000",
        "country": "US",
    })
    assert resp.status_code == 200
    assert resp.json()["externalAccountId"] == "ba_new"
    assert [t for t, _, _ in fake_stripe.calls] == [
        "Account.create_external_account", "Account.delete_external_account",
    ]
    (args, _), = fake_stripe.calls_to("Account.delete_external_account")
    assert args == ("acct_1", "ba_old")


def test_replace_bank_account_survives_failed_delete(stripe_client, fake_stripe):
    fake_stripe.respond("Account.create_external_account", {"id": "ba_new"})
    fake_stripe.respond("Account.delete_external_account", stripe.APIConnectionError("network down"))
    resp = stripe_client.patch("/stripe/payouts/add-bank-accounts", json={
        "connectAccountId": "acct_1", "externalAccountId": "ba_old",
        "bankAccountNumber": "000123456789", "country": "US",
    })
    assert resp.status_code == 200
    assert resp.json()["externalAccountId"] == "ba_new"


def test_delete_bank_account(stripe_client, fake_stripe):
    resp = stripe_client.request("DELETE", "/stripe/payouts/delete-bank-accounts", json={
        "connectAccountId": "acct_1", "externalAccountId": "ba_1",
    })
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert fake_stripe.calls_to("Account.delete_external_account") == [(("acct_1", "ba_1"), {})]


def test_list_external_accounts(stripe_client, fake_stripe):
    fake_stripe.respond("Account.list_external_accounts", {"data": [
        {"id": "ba_1", "bank_name": "STRIPE TEST BANK", "last4": "6789", "routing_number": "110000000",
         "currency": "usd", "country": "US", "status": "new", "default_for_currency": True},
    ]})
    body = stripe_client.get("/stripe/connect/account/acct_1/external-accounts").json()
    assert body[0]["defaultForCurrency"] is True
    assert body[0]["routingNumber"] == "110000000"
    (_, kwargs), = fake_stripe.calls_to("Account.list_external_accounts")
    assert kwargs == {"object": "bank_account"}


def test_transfer(stripe_client, fake_stripe):
    fake_stripe.respond("Transfer.create", {"id": "tr_1", "amount": 1999, "currency": "usd", "destination": "acct_1"})
    resp = stripe_client.post("/stripe/connect/transfer", json={
        "connectAccountId": "acct_1", "amount": 19.99, "currency": "USD",
    })
    assert resp.status_code == 201
    assert resp.json() == {"id": "tr_1", "amount": 1999, "currency": "usd", "destination": "acct_1"}
    assert stripe_client.post("/stripe/connect/transfer", json={
        "connectAccountId": "acct_1", "amount": 0.1, "currency": "usd",
    }).status_code == 422


def test_payout_runs_on_connected_account(stripe_client, fake_stripe):
    fake_stripe.respond("Payout.create", {
        "id": "po_1", "amount": 2500, "currency": "usd", "status": "pending", "arrival_date": 1700086400,
    })
    resp = stripe_client.post("/stripe/connect/payout", json={
        "connectAccountId": "acct_1", "amount": 25, "externalAccountId": "ba_1",
    })
    assert resp.status_code == 201
    assert resp.json()["arrivalDate"] == 1700086400
    (_, kwargs), = fake_stripe.calls_to("Payout.create")
    assert kwargs["stripe_account"] == "acct_1"
    assert kwargs["destination"] == "ba_1"
    assert kwargs["currency"] == "usd"


def test_payout_status_and_listing(stripe_client, fake_stripe):
    payout = {"id": "po_1", "amount": 2500, "currency": "usd", "status": "paid", "arrival_date": 1,
              "description": "weekly", "metadata": {}, "created": 1700000000}
    fake_stripe.respond("Payout.retrieve", payout)
    fake_stripe.respond("Payout.list", {"data": [payout]})

    body = stripe_client.get("/stripe/connect/payout/po_1", params={"connectAccountId": "acct_1"}).json()
    assert body["description"] == "weekly"

    items = stripe_client.get("/stripe/payouts", params={"connectAccountId": "acct_1"}).json()
    assert items[0]["created"] == 1700000000
    (_, kwargs), = fake_stripe.calls_to("Payout.list")
    assert kwargs == {"limit": 10, "stripe_account": "acct_1"}

    assert stripe_client.get("/stripe/payouts", params={"connectAccountId": "acct_1", "limit": 500}).status_code == 422


def test_cancel_payout(stripe_client, fake_stripe):
    fake_stripe.respond("Payout.cancel", {"id": "po_1", "status": "canceled", "amount": 2500, "currency": "usd"})
    resp = stripe_client.post("/stripe/payouts/po_1/cancel", params={"connectAccountId": "acct_1"})
    assert resp.json()["status"] == "canceled"
    (args, kwargs), = fake_stripe.calls_to("Payout.cancel")
    assert args == ("po_1",) and kwargs == {"stripe_account": "acct_1"}


def test_balance(stripe_client, fake_stripe):
    fake_stripe.respond("Balance.retrieve", {
        "available": [{"amount": 1000, "currency": "usd", "source_types": {"card": 1000}}],
        "pending": [{"amount": 50, "currency": "usd"}],
    })
    expected = {"available": [{"amount": 1000, "currency": "usd"}], "pending": [{"amount": 50, "currency": "usd"}]}
    assert stripe_client.get("/stripe/connect/account/acct_1/balance").json() == expected
    assert stripe_client.get("/stripe/payouts/balance", params={"connectAccountId": "acct_1"}).json() == expected
    for _, kwargs in fake_stripe.calls_to("Balance.retrieve"):
        assert kwargs == {"stripe_account": "acct_1"}


def test_delete_missing_bank_account_is_not_account_not_found(stripe_client, fake_stripe):
    fake_stripe.respond(
        "Account.delete_external_account",
        stripe.InvalidRequestError("No such external account: 'ba_gone'", "id", code="resource_missing"),
    )
    resp = stripe_client.request("DELETE", "/stripe/payouts/delete-bank-accounts", json={
        "connectAccountId": "acct_1", "externalAccountId": "ba_gone",
    })
    assert resp.status_code == 400
    assert resp.json()["code"] == "resource_missing"
    assert "acct_1" not in resp.json()["detail"]
