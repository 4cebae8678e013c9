"""
auth/tokens.py -- Password hashing, random identifiers, signed tokens, cookies.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in AuthService.sign_in_email() so response
       time does not reveal whether an email is registered [C1].

  Session tokens and reset tokens: opaque values from secrets.token_urlsafe.
       They are looked up by exact match in the store, so they carry no claims.

  Verification tokens: python-jose HS256 JWTs signed with SECRET_KEY. They
       carry the email and an exp claim, so verify_email() needs no DB row.
       decode_signed_token() distinguishes expiry from every other failure so
       the step can tell the user to request a new link.

Layer rule: no imports from api/ or events/.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

_ALGORITHM = "HS256"
_ID_ALPHABET = string.ascii_letters + string.digits

SESSION_COOKIE_NAME = "session_token"


class TokenExpired(Exception):
    """The signed token was well-formed but its exp claim has passed."""


class TokenInvalid(Exception):
    """The signed token failed signature or structure checks."""


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    # Recent bcrypt releases reject inputs over 72 bytes instead of truncating.
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Only the first 72 bytes take part, the same limit bcrypt has always
    applied. verify_password() cuts at the same point.
    """
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first sign-in is not measurably slower.
_DUMMY_HASH: str = hash_password("stepauth_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded [C1]."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Random identifiers
# ---------------------------------------------------------------------------


def generate_id(length: int = 32) -> str:
    """Alphanumeric random id used for primary keys and reset tokens."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Signed tokens (JWT)
# ---------------------------------------------------------------------------


def create_signed_token(claims: dict, secret_key: str, expire_seconds: int) -> str:
    """Encode claims as an HS256 JWT that expires after expire_seconds."""
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(seconds=expire_seconds)
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_signed_token(token: str, secret_key: str) -> dict:
    """Decode and verify a JWT.

    Raises TokenExpired when only the exp check failed, TokenInvalid for any
    other problem (bad signature, garbage input, wrong algorithm).
    """
    try:
        return jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired(str(exc)) from exc
    except JWTError as exc:
        raise TokenInvalid(str(exc)) from exc


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age matches the server-side session lifetime.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
