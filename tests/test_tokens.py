"""Unit tests for auth/tokens.py -- hashing, ids, signed tokens."""

import time

import pytest

from auth.tokens import (
    TokenExpired,
    TokenInvalid,
    create_signed_token,
    decode_signed_token,
    generate_id,
    generate_session_token,
    hash_password,
    verify_password,
)

SECRET = "s" * 40


def test_hash_and_verify_password() -> None:
    hashed = hash_password("hunter22!")
    assert hashed != "hunter22!"
    assert verify_password("hunter22!", hashed)
    assert not verify_password("hunter23!", hashed)


def test_verify_password_with_garbage_hash_is_false() -> None:
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_generate_id_is_alphanumeric_and_unique() -> None:
    ids = {generate_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) == 32 and i.isalnum() for i in ids)


def test_session_tokens_are_unique() -> None:
    assert generate_session_token() != generate_session_token()


def test_signed_token_round_trip_keeps_claims() -> None:
    token = create_signed_token({"email": "ada@example.com"}, SECRET, 60)
    claims = decode_signed_token(token, SECRET)
    assert claims["email"] == "ada@example.com"
    assert "exp" in claims


def test_expired_signed_token_raises_token_expired() -> None:
    token = create_signed_token({"email": "ada@example.com"}, SECRET, -10)
    with pytest.raises(TokenExpired):
        decode_signed_token(token, SECRET)


def test_wrong_secret_raises_token_invalid() -> None:
    token = create_signed_token({"email": "ada@example.com"}, SECRET, 60)
    with pytest.raises(TokenInvalid):
        decode_signed_token(token, "x" * 40)


def test_garbage_token_raises_token_invalid() -> None:
    with pytest.raises(TokenInvalid):
        decode_signed_token("header.payload.MOCK_SIGNATURE", SECRET)


def test_expiry_is_relative_to_now() -> None:
    token = create_signed_token({}, SECRET, 120)
    exp = decode_signed_token(token, SECRET)["exp"]
    assert 100 < exp - time.time() <= 120


def test_long_password_hashes_and_verifies() -> None:
    long_password = "p" * 100
    hashed = hash_password(long_password)
    assert verify_password(long_password, hashed)
