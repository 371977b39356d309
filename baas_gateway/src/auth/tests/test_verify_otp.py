import json

from .conftest import signup


def test_verify_otp_marks_user_verified_and_issues_tokens(client, fake_db, fake_redis, email_provider):
    signup(client, "verify@example.com")
    otp = email_provider.last_otp("verify@example.com")

    resp = client.post("/auth/verify-otp", json={"email": "verify@example.com", "otp": otp})
    assert resp.status_code == 200
    body = resp.json()
    assert body["tokens"]["accessToken"]
    assert body["tokens"]["refreshToken"]
    assert body["data"]["user"]["verified"] is True
    assert fake_db.users.find_one({"email": "verify@example.com"})["verified"] is True
    # the code is single use
    assert "otp:verify@example.com" not in fake_redis.store


def test_otp_is_stored_hashed_with_ttl(client, fake_redis, email_provider):
    signup(client, "hashed@example.com")
    otp = email_provider.last_otp("hashed@example.com")

    record = json.loads(fake_redis.store["otp:hashed@example.com"])
    assert record["purpose"] == "signup"
    assert otp not in record["hash"]
    assert fake_redis.ttls["otp:hashed@example.com"] == 5 * 60


def test_wrong_otp_is_rejected_and_counted(client, fake_db, email_provider):
    signup(client, "wrong@example.com")
    otp = email_provider.last_otp("wrong@example.com")
    bad = "000000" if otp != "000000" else "111111"

    resp = client.post("/auth/verify-otp", json={"email": "wrong@example.com", "otp": bad})
    assert resp.status_code == 401
    assert fake_db.users.find_one({"email": "wrong@example.com"})["failed_otp_attempts"] == 1


def test_account_locks_after_too_many_failures(client, fake_db, fake_redis, email_provider):
    signup(client, "locked@example.com")
    otp = email_provider.last_otp("locked@example.com")
    bad = "000000" if otp != "000000" else "111111"

    for _ in range(5):
        assert client.post("/auth/verify-otp", json={"email": "locked@example.com", "otp": bad}).status_code == 401

    user = fake_db.users.find_one({"email": "locked@example.com"})
    assert user["account_locked_until"] is not None
    assert "otp:locked@example.com" not in fake_redis.store

    resp = client.post("/auth/verify-otp", json={"email": "locked@example.com", "otp": otp})
    assert resp.status_code == 403


def test_verify_without_pending_otp(client, fake_redis, email_provider):
    signup(client, "expired@example.com")
    otp = email_provider.last_otp("expired@example.com")
    fake_redis.store.pop("otp:expired@example.com")

    resp = client.post("/auth/verify-otp", json={"email": "expired@example.com", "otp": otp})
    assert resp.status_code == 401


def test_verify_unknown_email(client):
    resp = client.post("/auth/verify-otp", json={"email": "nobody@example.com", "otp": "123456"})
    assert resp.status_code == 401


def test_otp_must_be_numeric(client):
    resp = client.post("/auth/verify-otp", json={"email": "x@example.com", "otp": "12ab56"})
    assert resp.status_code == 422


def test_resend_replaces_the_code_and_keeps_its_purpose(client, fake_redis, email_provider):
    signup(client, "resend@example.com")
    resp = client.post("/auth/resend", json={"email": "resend@example.com"})
    assert resp.status_code == 200
    assert len([m for m in email_provider.sent if m["to"] == "resend@example.com"]) == 2
    assert json.loads(fake_redis.store["otp:resend@example.com"])["purpose"] == "signup"

    otp = email_provider.last_otp("resend@example.com")
    assert client.post("/auth/verify-otp", json={"email": "resend@example.com", "otp": otp}).status_code == 200


def test_resend_unknown_email(client):
    assert client.post("/auth/resend", json={"email": "ghost@example.com"}).status_code == 400


def test_otp_sends_are_rate_limited(client):
    signup(client, "spam@example.com")
    statuses = [client.post("/auth/resend", json={"email": "spam@example.com"}).status_code for _ in range(5)]
    # one send at signup plus four resends fit in the hourly limit of five
    assert statuses[:4] == [200, 200, 200, 200]
    assert statuses[4] == 400


def test_verify_otp_when_otp_store_is_down(client, email_provider, break_redis):
    assert signup(client, "ada@example.com").status_code == 201
    otp = email_provider.last_otp("ada@example.com")
    break_redis()

    resp = client.post("/auth/verify-otp", json={"email": "ada@example.com", "otp": otp})
    assert resp.status_code == 503


def test_resend_when_otp_store_is_down(client, break_redis):
    assert signup(client, "ada@example.com").status_code == 201
    break_redis()

    resp = client.post("/auth/resend", json={"email": "ada@example.com"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Failed to send OTP email"
