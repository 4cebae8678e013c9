"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
service do the work; routes map these onto response bodies.

Layer rule: no imports from api/ or events/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An email/password identity.

    email is always stored lower-cased so lookups are case-insensitive.
    hashed_password is the bcrypt hash; it never leaves the auth package.
    """

    id: str
    name: str
    email: str
    email_verified: bool = False
    image: str | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def public(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


@dataclass
class Session:
    """A server-side login session. token is what the client presents."""

    id: str
    token: str
    user_id: str
    expires_at: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def public(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "userId": self.user_id,
            "expiresAt": self.expires_at,
            "createdAt": self.created_at,
        }


@dataclass
class Verification:
    """A single-use, time-limited token record.

    Password reset rows use identifier "reset-password:<token>" and carry the
    user id in value.
    """

    id: str
    identifier: str
    value: str
    expires_at: str
    created_at: str | None = None


@dataclass
class AuthResult:
    """What sign-up, sign-in and session lookup hand back to the caller.

    refreshed is True when a session lookup pushed expires_at forward, so
    the caller knows to re-issue the session cookie.
    """

    user: User
    session: Session | None = None
    refreshed: bool = False
