"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for StepAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. email_host -> EMAIL_HOST, frontend_url -> FRONTEND_URL).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode generates a SECRET_KEY with a warning; production
      mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Verification
       JWTs are signed with it.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or events/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("stepauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    secret_key: str = ""
    database_url: str = "sqlite:///stepauth.db"
    # Public origin of this API; verification links point here.
    base_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000"]
    secure_cookies: bool = False
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    email_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Frontend
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    frontend_reset_url_base: str = "http://localhost:3000/auth/reset"

    # ------------------------------------------------------------------
    # Email / password provider
    # ------------------------------------------------------------------

    auto_sign_in: bool = True
    require_email_verification: bool = False
    send_verification_on_sign_up: bool = True
    min_password_length: int = 8
    max_password_length: int = 128
    revoke_sessions_on_password_reset: bool = True

    # Seven days, refreshed at most once a day.
    session_expire_seconds: int = 60 * 60 * 24 * 7
    session_update_age_seconds: int = 60 * 60 * 24
    reset_token_expire_seconds: int = 3600
    verification_token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # SMTP
    # ------------------------------------------------------------------

    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: str = ""
    email_pass: str = ""
    email_from: str = ""
    email_timeout_seconds: int = 10

    # "direct": reset emails go out from the auth callback.
    # "event":  the callback emits auth.password_reset_required and the
    #           events/ subscriber sends the email.
    reset_email_delivery: Literal["direct", "event"] = "direct"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def smtp_secure(self) -> bool:
        """Port 465 means implicit TLS; everything else upgrades with STARTTLS."""
        return self.email_port == 465

    @property
    def sender(self) -> str:
        return self.email_from or self.email_user


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
