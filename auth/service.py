"""
auth/service.py -- The authentication API surface used by every step.

AuthService owns the email/password provider: sign-up, sign-in, sign-out,
session lookup with sliding expiry, password reset and email verification.
Steps call these methods and translate the AuthError subclasses into HTTP
responses; they never hash passwords or build tokens themselves.

Email delivery is not done here. The service calls two callbacks supplied
at construction time (see auth/setup.py):
  on_reset_password(user, url, token)
  on_verification_email(user, url, token)

Errors:
  Every expected failure raises an AuthError subclass with a stable `code`
  (USER_ALREADY_EXISTS, INVALID_EMAIL_OR_PASSWORD, TOKEN_EXPIRED, ...).
  Database errors propagate as sqlalchemy exceptions; steps log them and
  answer 500.

Layer rule: no imports from api/ or events/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from auth.models import AuthResult, Session, User, Verification
from auth.store import AuthStore
from auth.tokens import (
    TokenExpired,
    TokenInvalid,
    burn_password_check,
    create_signed_token,
    decode_signed_token,
    generate_id,
    generate_session_token,
    hash_password,
    verify_password,
)
from core.config import Settings
from core.mailer import MailError

logger = logging.getLogger("stepauth.auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_RESET_PREFIX = "reset-password:"

EmailCallback = Callable[[User, str, str], None]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """Base authentication error."""

    code = "AUTH_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidEmailError(AuthError):
    code = "INVALID_EMAIL"


class PasswordTooShortError(AuthError):
    code = "PASSWORD_TOO_SHORT"


class PasswordTooLongError(AuthError):
    code = "PASSWORD_TOO_LONG"


class UserExistsError(AuthError):
    code = "USER_ALREADY_EXISTS"


class InvalidCredentialsError(AuthError):
    code = "INVALID_EMAIL_OR_PASSWORD"


class EmailNotVerifiedError(AuthError):
    code = "EMAIL_NOT_VERIFIED"


class InvalidTokenError(AuthError):
    code = "INVALID_TOKEN"


class TokenExpiredError(AuthError):
    code = "TOKEN_EXPIRED"


class UserNotFoundError(AuthError):
    code = "USER_NOT_FOUND"


class EmailAlreadyVerifiedError(AuthError):
    code = "EMAIL_ALREADY_VERIFIED"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_past(iso_ts: str) -> bool:
    return datetime.fromisoformat(iso_ts) <= _now()


def _append_query(url: str, params: dict) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode(params)}"


def _noop_callback(user: User, url: str, token: str) -> None:
    logger.warning("No email callback configured; link for %s not delivered", user.email)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    """Email/password authentication backed by an AuthStore."""

    def __init__(
        self,
        store: AuthStore,
        settings: Settings,
        on_reset_password: EmailCallback | None = None,
        on_verification_email: EmailCallback | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.on_reset_password = on_reset_password or _noop_callback
        self.on_verification_email = on_verification_email or _noop_callback

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_email(self, email: str) -> str:
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise InvalidEmailError("Invalid email address.")
        return email

    def _validate_password(self, password: str) -> None:
        if len(password) < self.settings.min_password_length:
            raise PasswordTooShortError(
                f"Password must be at least {self.settings.min_password_length} characters."
            )
        if len(password) > self.settings.max_password_length:
            raise PasswordTooLongError(
                f"Password must be at most {self.settings.max_password_length} characters."
            )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _create_session(self, user: User, ip_address: str | None, user_agent: str | None) -> Session:
        expires = _now() + timedelta(seconds=self.settings.session_expire_seconds)
        session = Session(
            id=generate_id(),
            token=generate_session_token(),
            user_id=user.id,
            expires_at=expires.isoformat(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return self.store.create_session(session)

    def get_session(self, token: str) -> AuthResult | None:
        """Resolve a session token to an AuthResult, or None.

        Expired sessions are deleted on sight. A live session whose
        updated_at is older than session_update_age_seconds gets its expiry
        pushed out again (refreshed=True), so active users stay signed in.
        """
        if not token:
            return None
        session = self.store.get_session_by_token(token)
        if session is None:
            return None
        if _is_past(session.expires_at):
            self.store.delete_session(token)
            return None
        user = self.store.get_user_by_id(session.user_id)
        if user is None:
            self.store.delete_session(token)
            return None

        last_update = datetime.fromisoformat(session.updated_at or session.created_at or session.expires_at)
        refreshed = _now() - last_update >= timedelta(seconds=self.settings.session_update_age_seconds)
        if refreshed:
            session.expires_at = (_now() + timedelta(seconds=self.settings.session_expire_seconds)).isoformat()
            self.store.extend_session(session.id, session.expires_at)
        return AuthResult(user=user, session=session, refreshed=refreshed)

    def sign_out(self, token: str) -> bool:
        return self.store.delete_session(token)

    # ------------------------------------------------------------------
    # Sign up / sign in
    # ------------------------------------------------------------------

    def sign_up_email(
        self,
        name: str,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Create an email/password account.

        Returns a session only when auto sign-in is enabled and email
        verification is not required before login.
        """
        email = self._validate_email(email)
        self._validate_password(password)
        if self.store.get_user_by_email(email) is not None:
            raise UserExistsError("User already exists.")

        user = User(
            id=generate_id(),
            name=name.strip(),
            email=email,
            hashed_password=hash_password(password),
        )
        try:
            user = self.store.create_user(user)
        except IntegrityError as exc:
            # Lost a race with a concurrent sign-up for the same email.
            raise UserExistsError("User already exists.") from exc
        logger.info("User created: %s", user.id)

        if self.settings.send_verification_on_sign_up:
            try:
                self._send_verification(user, self.settings.frontend_url)
            except MailError:
                logger.exception("Verification email for new user %s could not be sent", user.id)

        session = None
        if self.settings.auto_sign_in and not self.settings.require_email_verification:
            session = self._create_session(user, ip_address, user_agent)
        return AuthResult(user=user, session=session)

    def sign_in_email(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Authenticate with timing equalization [C1].

        bcrypt runs whether or not the email exists so response time does
        not reveal which accounts are registered.
        """
        user = self.store.get_user_by_email(email)
        if user is None or user.hashed_password is None:
            burn_password_check(password)
            raise InvalidCredentialsError("Invalid email or password.")
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Invalid email or password.")
        if self.settings.require_email_verification and not user.email_verified:
            raise EmailNotVerifiedError("Email not verified.")

        session = self._create_session(user, ip_address, user_agent)
        return AuthResult(user=user, session=session)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def create_token(self) -> str:
        return generate_id()

    def issue_password_reset_token(self, user: User) -> tuple[str, datetime]:
        """Persist a fresh reset token for user and return (token, expires_at)."""
        token = self.create_token()
        expires = _now() + timedelta(seconds=self.settings.reset_token_expire_seconds)
        self.store.create_verification(
            Verification(
                id=generate_id(),
                identifier=f"{_RESET_PREFIX}{token}",
                value=user.id,
                expires_at=expires.isoformat(),
            )
        )
        return token, expires

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        """Issue a reset token and hand the link to on_reset_password.

        Unknown emails return silently; the caller answers the same way in
        both cases.
        """
        user = self.store.get_user_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        token, _expires = self.issue_password_reset_token(user)
        url = _append_query(redirect_to, {"token": token, "email": user.email})
        if self.settings.debug:
            logger.info("Password reset link for %s: %s", user.email, url)
        self.on_reset_password(user, url, token)

    def reset_password(self, token: str, email: str, new_password: str) -> User:
        verification = self.store.get_verification(f"{_RESET_PREFIX}{token}")
        if verification is None:
            raise InvalidTokenError("Reset token not found.")
        if _is_past(verification.expires_at):
            self.store.delete_verification(verification.id)
            raise TokenExpiredError("Reset token expired.")

        user = self.store.get_user_by_id(verification.value)
        if user is None or user.email != email.strip().lower():
            raise InvalidTokenError("Reset token does not match this account.")

        self._validate_password(new_password)
        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        self.store.delete_verification(verification.id)
        if self.settings.revoke_sessions_on_password_reset:
            revoked = self.store.delete_user_sessions(user.id)
            logger.info("Revoked %d session(s) after password reset for %s", revoked, user.id)
        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def _send_verification(self, user: User, callback_url: str) -> None:
        token = create_signed_token(
            {"email": user.email},
            self.settings.secret_key,
            self.settings.verification_token_expire_seconds,
        )
        url = _append_query(
            f"{self.settings.base_url.rstrip('/')}/api/auth/verify-email",
            {"token": token, "callbackURL": callback_url},
        )
        self.on_verification_email(user, url, token)

    def send_verification_email(self, email: str, callback_url: str) -> None:
        user = self.store.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError("User not found.")
        if user.email_verified:
            raise EmailAlreadyVerifiedError("Email already verified.")
        self._send_verification(user, callback_url)

    def verify_email(self, token: str) -> User:
        try:
            claims = decode_signed_token(token, self.settings.secret_key)
        except TokenExpired as exc:
            raise TokenExpiredError("Verification token expired.") from exc
        except TokenInvalid as exc:
            raise InvalidTokenError("Verification token invalid.") from exc

        email = claims.get("email")
        if not email:
            raise InvalidTokenError("Verification token invalid.")
        user = self.store.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError("User not found.")
        if user.email_verified:
            raise EmailAlreadyVerifiedError("Email already verified.")
        self.store.update_user(user.id, email_verified=True)
        user.email_verified = True
        return user

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        return self.store.count_users()
