"""
API request and response models for StepAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
separate from the dataclasses in auth/models.py, which own the internal
domain representation.

Request fields are Optional on purpose: each step checks presence itself so
a missing field gets that step's own 400 message rather than a generic 422.
Types and length caps are still enforced here.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    No whitespace stripping on models that carry passwords; the service
    normalizes name and email itself.
    """

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=255)


class EmailRequest(BaseModel):
    """Request body for forgot-password, resend-verification and get-verification-token."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=320)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password. Accepts newPassword or new_password."""

    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=320)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=255)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email-post."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: Optional[str] = Field(default=None, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error envelope used by the global exception handlers."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
