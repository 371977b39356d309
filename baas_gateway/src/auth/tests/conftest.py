import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

PASSWORD = "Passw0rd!"


def signup(client, email, password=PASSWORD, **extra):
    body = {"email": email, "password": password, "firstName": "Ada", "lastName": "Lovelace"}
    body.update(extra)
    return client.post("/auth/signup", json=body)


def auth_header(tokens):
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def verified_user(client, email_provider):
    """Sign up and verify ``ada@example.com``; returns the email and issued tokens."""
    email = "ada@example.com"
    assert signup(client, email).status_code == 201
    resp = client.post("/auth/verify-otp", json={"email": email, "otp": email_provider.last_otp(email)})
    assert resp.status_code == 200
    return {"email": email, "tokens": resp.json()["tokens"], "user": resp.json()["data"]["user"]}


@pytest.fixture
def break_redis(fake_redis, monkeypatch):
    """Call the returned function to make every Redis command fail with a dropped connection."""
    async def refuse(*args, **kwargs):
        raise RedisConnectionError("Connection refused")

    def _break():
        for method in ("get", "set", "delete", "incr", "expire"):
            monkeypatch.setattr(fake_redis, method, refuse)

    return _break
