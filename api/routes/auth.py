"""
api/routes/auth.py -- Authentication steps.

Routes:
  POST /auth/register                -- email/password sign-up (201)
  POST /auth/login                   -- sign-in; sets session cookie
  POST /api/auth/logout              -- revokes the current session (requires session)
  GET  /api/auth/session             -- current user + session (requires session)
  POST /auth/forgot-password         -- emails a reset link; always 200
  POST /auth/reset-password          -- consumes a reset token, sets a new password
  POST /auth/verify-email-post       -- verifies an email from a token in the body
  GET  /api/auth/verify-email        -- target of the emailed verification link
  POST /auth/resend-verification     -- re-sends the verification email; always 200
  POST /auth/get-verification-token  -- issues a reset token as a signed JWT (DEBUG only)

Each step checks its own required fields, calls AuthService, and maps the
AuthError subclasses onto status codes. Messages stay generic where detail
would reveal whether an account exists.

Security:
  [H2] POST /auth/login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [H4] Email-sending steps are rate-limited per IP (EMAIL_RATE_LIMIT).
  [M5] Cache-Control: no-store on responses that carry session tokens.
  @limiter.limit goes BELOW @router.post so the registered endpoint is the
  slowapi wrapper. Annotations here must stay real objects (no
  `from __future__ import annotations`): FastAPI resolves them through the
  wrapper, whose globals are slowapi's, not this module's.
  callbackURL on the verification link only redirects to FRONTEND_URL or a
  relative path (open-redirect prevention).
"""

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode, urlparse

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import EmailRequest, LoginRequest, RegisterRequest, ResetPasswordRequest, VerifyEmailRequest
from auth.dependencies import SessionContext, require_session
from auth.service import (
    AuthError,
    AuthService,
    EmailAlreadyVerifiedError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidEmailError,
    InvalidTokenError,
    PasswordTooLongError,
    PasswordTooShortError,
    TokenExpiredError,
    UserExistsError,
    UserNotFoundError,
)
from auth.tokens import clear_session_cookie, create_signed_token, set_session_cookie
from core.config import get_settings
from core.mailer import MailError

logger = logging.getLogger("stepauth.api")

_settings = get_settings()

router = APIRouter()

_RESET_GENERIC = "If an account exists, a password reset link has been sent to the email address."
_RESEND_GENERIC = "If an unverified account exists, a verification email has been sent."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _missing(*values: str | None) -> bool:
    return any(v is None or not v.strip() for v in values)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _client_meta(request: Request) -> tuple[str | None, str | None]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("User-Agent")


def _auth(request: Request) -> AuthService:
    return request.app.state.auth


def _session_response(status_code: int, content: dict, token: str | None) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    if token:
        set_session_cookie(resp, token, _settings.session_expire_seconds, _settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _safe_callback(url: str | None) -> str | None:
    """Return url if it is relative or on the frontend origin, else None."""
    if not url:
        return None
    if url.startswith("/") and not url.startswith("//"):
        return url
    target = urlparse(url)
    frontend = urlparse(_settings.frontend_url)
    if target.scheme in ("http", "https") and (target.scheme, target.netloc) == (frontend.scheme, frontend.netloc):
        return url
    return None


# ---------------------------------------------------------------------------
# Sign-up / sign-in / sign-out
# ---------------------------------------------------------------------------


@router.post("/auth/register", status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account; signs the user in when auto sign-in is enabled."""
    if _missing(body.name, body.email, body.password):
        logger.error("Missing required fields during registration attempt")
        return _error(400, "Please provide name, email, and password.")

    ip, user_agent = _client_meta(request)
    try:
        result = _auth(request).sign_up_email(body.name, body.email, body.password, ip, user_agent)
    except UserExistsError:
        logger.info("Registration rejected: email already registered")
        return _error(409, "The provided email is already registered.")
    except (InvalidEmailError, PasswordTooShortError, PasswordTooLongError) as exc:
        return _error(400, exc.message)
    except SQLAlchemyError:
        logger.exception("Registration failed")
        return _error(500, "Registration failed due to a server error.")

    logger.info("New user registered successfully: %s", result.user.email)
    if result.session is not None:
        message = "Registration successful. User created and signed in."
    else:
        message = "Registration successful. Please verify your email before signing in."
    content = {
        "message": message,
        "user": result.user.public(),
        "session": result.session.public() if result.session else None,
    }
    return _session_response(201, content, result.session.token if result.session else None)


@router.post("/auth/login")
@limiter.limit(_settings.login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Sign in with email and password.

    Wrong email and wrong password get the same 401 body so the response
    does not reveal which accounts exist.
    """
    if _missing(body.email, body.password):
        logger.error("Missing email or password during login attempt")
        return _error(400, "Please provide both email and password.")

    ip, user_agent = _client_meta(request)
    try:
        result = _auth(request).sign_in_email(body.email, body.password, ip, user_agent)
    except InvalidCredentialsError:
        logger.info("Login failed: bad credentials")
        resp = _error(401, "Invalid email or password.")
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp
    except EmailNotVerifiedError:
        return _error(403, "Account requires email verification before login.")
    except SQLAlchemyError:
        logger.exception("Login failed")
        return _error(500, "Login failed due to a server error.")

    logger.info("User signed in successfully: %s", result.user.email)
    content = {
        "message": "Login successful.",
        "user": result.user.public(),
        "session": result.session.public(),
    }
    return _session_response(200, content, result.session.token)


@router.post("/api/auth/logout")
def logout(request: Request, ctx: SessionContext = Depends(require_session)) -> JSONResponse:
    try:
        _auth(request).sign_out(ctx.session.token)
    except SQLAlchemyError:
        logger.exception("Logout error")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "LOGOUT_FAILED", "message": "Logout process failed"},
        )
    resp = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    clear_session_cookie(resp)
    return resp


@router.get("/api/auth/session")
async def get_session(ctx: SessionContext = Depends(require_session)) -> dict:
    return {
        "success": True,
        "data": {
            "user": ctx.user.public(),
            "session": {"id": ctx.session.id, "expiresAt": ctx.session.expires_at},
        },
    }


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password")
@limiter.limit(_settings.email_rate_limit)  # [H4]
def forgot_password(request: Request, body: EmailRequest) -> JSONResponse:
    """Email a reset link. Always 200 once an email is supplied."""
    if _missing(body.email):
        return _error(400, "Please provide the email address associated with the account.")

    try:
        _auth(request).request_password_reset(body.email, _settings.frontend_reset_url_base)
    except (SQLAlchemyError, MailError, ValidationError) as exc:
        logger.error("Forgot password failed: %s", exc)
    return JSONResponse(content={"message": _RESET_GENERIC})


@router.post("/auth/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    if _missing(body.token, body.email, body.new_password):
        return _error(400, "Missing required fields: token, email, or new password.")

    try:
        _auth(request).reset_password(body.token.strip(), body.email, body.new_password)
    except TokenExpiredError:
        logger.info("Password reset failed: token expired")
        return _error(400, "The reset link has expired. Please request a new one.")
    except InvalidTokenError:
        logger.info("Password reset failed: token invalid")
        return _error(400, "The reset token is invalid.")
    except (PasswordTooShortError, PasswordTooLongError) as exc:
        return _error(400, exc.message)
    except SQLAlchemyError:
        logger.exception("Password reset failed")
        return _error(500, "Password reset failed due to a server error.")

    logger.info("Password successfully reset for user: %s", body.email)
    return JSONResponse(content={"message": "Password reset successful. You can now log in with your new password."})


@router.post("/auth/get-verification-token")
def get_verification_token(request: Request, body: EmailRequest) -> JSONResponse:
    """Issue a password reset token and return it wrapped in a signed JWT.

    Development helper: it hands a usable reset token to the caller, so it
    answers 404 unless DEBUG is on.
    """
    if not _settings.debug:
        return _error(404, "Not found.")
    if _missing(body.email):
        return _error(400, "Please provide the email address.")

    auth = _auth(request)
    try:
        user = auth.store.get_user_by_email(body.email)
        if user is None:
            logger.warning("Verification token requested for unknown email")
            return JSONResponse(status_code=404, content={"message": "User not found."})
        token, expires = auth.issue_password_reset_token(user)
    except SQLAlchemyError:
        logger.exception("Failed to generate verification token")
        return _error(500, "Internal server error during token generation.")

    claims = {
        "sub": user.id,
        "email": user.email,
        "verificationToken": token,
        "expiresAt": expires.isoformat(),
        "iss": "StepAuth",
    }
    remaining = max(int((expires - datetime.now(timezone.utc)).total_seconds()), 1)
    signed = create_signed_token(claims, _settings.secret_key, remaining)
    logger.info("Verification token generated for: %s", user.email)
    return JSONResponse(content={"jwt": signed, "rawToken": token})


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.post("/auth/verify-email-post")
def verify_email_post(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    if _missing(body.token):
        return _error(400, "Verification token is required.")

    try:
        user = _auth(request).verify_email(body.token)
    except TokenExpiredError:
        return JSONResponse(
            status_code=400,
            content={"error": "The verification link has expired. Please request a new one.", "success": False},
        )
    except (InvalidTokenError, UserNotFoundError):
        return JSONResponse(
            status_code=400,
            content={"error": "The verification token is invalid.", "success": False},
        )
    except EmailAlreadyVerifiedError:
        return JSONResponse(
            status_code=200,
            content={"error": "This email address has already been verified.", "success": False},
        )
    except SQLAlchemyError:
        logger.exception("Email verification failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Email verification failed due to a server error.", "success": False},
        )

    logger.info("Email verified successfully for %s", user.email)
    return JSONResponse(
        content={
            "message": "Email verified successfully! You can now sign in.",
            "success": True,
            "user": {**user.public(), "emailVerified": True},
        }
    )


@router.get("/api/auth/verify-email", response_model=None)
def verify_email_link(
    request: Request, token: str = "", callbackURL: str | None = None  # noqa: N803 -- query param name
) -> JSONResponse | RedirectResponse:
    """Landing point of the verification email link.

    With a safe callbackURL the browser is redirected there (with ?error=CODE
    on failure); otherwise a JSON status is returned.
    """
    callback = _safe_callback(callbackURL)
    try:
        _auth(request).verify_email(token)
    except EmailAlreadyVerifiedError:
        pass
    except AuthError as exc:
        if callback:
            sep = "&" if "?" in callback else "?"
            return RedirectResponse(f"{callback}{sep}{urlencode({'error': exc.code})}", status_code=302)
        return JSONResponse(status_code=400, content={"error": exc.code, "message": exc.message})

    if callback:
        return RedirectResponse(callback, status_code=302)
    return JSONResponse(content={"status": True})


@router.post("/auth/resend-verification")
@limiter.limit(_settings.email_rate_limit)  # [H4]
def resend_verification(request: Request, body: EmailRequest) -> JSONResponse:
    """Re-send the verification email. Always 200 once an email is supplied."""
    if _missing(body.email):
        return _error(400, "Email address is required.")

    try:
        _auth(request).send_verification_email(body.email, _settings.frontend_url)
        logger.info("Verification email resent to %s", body.email)
    except (AuthError, SQLAlchemyError, MailError) as exc:
        logger.error("Failed to resend verification email: %s", exc)
    return JSONResponse(content={"message": _RESEND_GENERIC})
