"""
events/password_reset.py -- Sends the reset email for auth.password_reset_required.

The payload is a plain dict emitted by auth/setup.py. It is validated with
a Pydantic model before anything is sent, so a malformed event fails loudly
(pydantic.ValidationError) instead of mailing a broken link.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.emails import build_reset_email
from auth.setup import PASSWORD_RESET_REQUIRED
from core.mailer import Mailer
from events.bus import EventBus, Handler

logger = logging.getLogger("stepauth.events")

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class PasswordResetRequired(BaseModel):
    """Payload of auth.password_reset_required."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    url: str = Field(min_length=1, max_length=2048)
    token: str = Field(min_length=1, max_length=255)

    @field_validator("url")
    @classmethod
    def require_http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value


def make_reset_email_handler(mailer: Mailer) -> Handler:
    def send_password_reset_email(payload: dict) -> None:
        event = PasswordResetRequired.model_validate(payload)
        logger.info("Sending password reset email to %s", event.email)
        mailer.send(build_reset_email(event.email, event.url))

    return send_password_reset_email


def register(bus: EventBus, mailer: Mailer) -> Handler:
    """Subscribe the reset-email sender to bus. Returns the handler for unsubscribe."""
    handler = make_reset_email_handler(mailer)
    bus.subscribe(PASSWORD_RESET_REQUIRED, handler)
    return handler
