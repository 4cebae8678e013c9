"""
auth/setup.py -- Wires AuthService to its store and its email callbacks.

Verification emails are always sent directly with the mailer. Password reset
emails follow Settings.reset_email_delivery:

  direct -- the callback builds the message and sends it immediately.
  event  -- the callback emits PASSWORD_RESET_REQUIRED with a structured
            payload {email, url, token}; events/password_reset.py subscribes
            and does the sending.

The emit function is injected rather than imported so auth/ stays
independent of events/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from auth.emails import build_reset_email, build_verification_email
from auth.models import User
from auth.service import AuthService
from auth.store import AuthStore
from core.config import Settings
from core.mailer import Mailer

logger = logging.getLogger("stepauth.auth")

PASSWORD_RESET_REQUIRED = "auth.password_reset_required"

Emit = Callable[[str, dict], int]


def build_auth_service(
    settings: Settings,
    store: AuthStore,
    mailer: Mailer,
    emit: Emit | None = None,
) -> AuthService:
    def send_verification_email(user: User, url: str, token: str) -> None:
        mailer.send(build_verification_email(user.email, url, user.name))
        logger.info("Verification email sent to %s", user.email)

    def send_reset_password_direct(user: User, url: str, token: str) -> None:
        mailer.send(build_reset_email(user.email, url))
        logger.info("Password reset email sent to %s", user.email)

    def send_reset_password_event(user: User, url: str, token: str) -> None:
        handled = emit(PASSWORD_RESET_REQUIRED, {"email": user.email, "url": url, "token": token})
        if handled == 0:
            logger.warning("No subscriber for %s; reset email for %s not sent", PASSWORD_RESET_REQUIRED, user.email)

    if settings.reset_email_delivery == "event":
        if emit is None:
            raise ValueError("reset_email_delivery='event' requires an emit function")
        on_reset = send_reset_password_event
    else:
        on_reset = send_reset_password_direct

    return AuthService(
        store,
        settings,
        on_reset_password=on_reset,
        on_verification_email=send_verification_email,
    )
