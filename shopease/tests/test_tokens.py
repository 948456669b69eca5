"""
Test cases for password hashing and access tokens.
"""
import time
from dataclasses import replace
from datetime import timedelta

import jwt
import pytest

from shopease.auth.jwt import (
    BadSignatureError, MalformedTokenError, TokenData, TokenExpiredError,
    create_access_token, seconds_until_expiry, verify_token
)
from shopease.auth.passwords import get_password_hash, verify_password, verify_password_async
from shopease.auth.reset_tokens import generate_reset_token


def test_hash_and_verify_password():
    hashed = get_password_hash("secret1", rounds=4)

    assert hashed != "secret1"
    assert verify_password("secret1", hashed)
    assert not verify_password("secret2", hashed)


def test_hash_is_salted():
    assert get_password_hash("secret1", rounds=4) != get_password_hash("secret1", rounds=4)


@pytest.mark.parametrize("password, hashed", [
    ("secret1", "not-a-bcrypt-hash"),
    ("", "$2b$04$abcdefghijklmnopqrstuu"),
    ("secret1", ""),
])
def test_verify_password_rejects_bad_input(password, hashed):
    assert verify_password(password, hashed) is False


@pytest.mark.asyncio
async def test_verify_password_async():
    hashed = get_password_hash("secret1", rounds=4)
    assert await verify_password_async("secret1", hashed)
    assert not await verify_password_async("nope", hashed)


def test_token_round_trip(settings):
    token = create_access_token(settings, user_id="u1", role="manager", email="m@x.com")

    data = verify_token(settings, token.access_token)

    assert data.user_id == "u1"
    assert data.role == "manager"
    assert data.email == "m@x.com"
    assert data.exp == token.expires_at
    expected = time.time() + settings.access_token_expire_minutes * 60
    assert abs(token.expires_at - expected) < 5


def test_expired_token_raises(settings):
    token = create_access_token(settings, "u1", "user", "a@x.com", expires_delta=timedelta(seconds=-1))
    with pytest.raises(TokenExpiredError):
        verify_token(settings, token.access_token)


def test_wrong_key_raises(settings):
    token = create_access_token(replace(settings, jwt_secret_key="other"), "u1", "user", "a@x.com")
    with pytest.raises(BadSignatureError):
        verify_token(settings, token.access_token)


@pytest.mark.parametrize("payload", [
    {"role": "user", "email": "a@x.com", "exp": 4102444800},
    {"sub": "u1", "role": "user", "email": "a@x.com"},
    {"sub": "u1", "exp": 4102444800},
])
def test_missing_claims_raise(settings, payload):
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    with pytest.raises(MalformedTokenError):
        verify_token(settings, token)


def test_garbage_raises(settings):
    with pytest.raises(MalformedTokenError):
        verify_token(settings, "a.b.c")


def test_seconds_until_expiry():
    now = int(time.time())
    assert seconds_until_expiry(TokenData(user_id="u", role="user", email="e", exp=now + 100)) in (99, 100)
    assert seconds_until_expiry(TokenData(user_id="u", role="user", email="e", exp=now - 100)) == 0
    assert seconds_until_expiry(TokenData(user_id="u", role="user", email="e")) == 0


def test_reset_tokens_are_random_hex():
    first, second = generate_reset_token(), generate_reset_token()
    assert first != second
    assert len(first) == 64
    int(first, 16)
