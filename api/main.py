"""
api/main.py -- FastAPI application entry point for StepAuth.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests / refresh_session_cookie -- request log line; re-issues the
     session cookie when sliding expiry pushed the session out

Lifespan handles startup (store, mailer, event bus, auth service, expiry
purge task) and shutdown (cancel purge task, close DB) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse
from api.routes.auth import router as auth_router
from api.routes.diagnostics import VERSION
from api.routes.diagnostics import router as diagnostics_router
from api.routes.users import router as users_router
from auth.setup import build_auth_service
from auth.store import AuthStore
from auth.tokens import SESSION_COOKIE_NAME, set_session_cookie
from core.config import get_settings
from core.errors import StepError
from core.mailer import Mailer
from events import password_reset
from events.bus import EventBus

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("stepauth.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


def _purge_expired(store: AuthStore) -> None:
    """Delete expired sessions and verification rows.

    A database error is logged and swallowed so the next round still runs.
    """
    try:
        sessions = store.purge_expired_sessions()
        verifications = store.purge_expired_verifications()
    except SQLAlchemyError:
        logger.exception("Expiry purge failed; retrying next round")
        return
    logger.info("Purged %d expired session(s), %d expired verification(s)", sessions, verifications)


async def _purge_loop(app: FastAPI) -> None:
    """Run _purge_expired every 6 hours.

    get_session() and reset_password() already drop expired rows they touch;
    this catches the ones nobody presents again. CancelledError from
    task.cancel() during shutdown unwinds the coroutine out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(6 * 60 * 60)
        _purge_expired(app.state.auth.store)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth stack on startup; tear it down on shutdown.

    The event subscriber is registered before the auth service is built so
    a reset requested on the very first request already has a listener.
    """
    logger.info("StepAuth API starting up")
    store = AuthStore(_settings.database_url)
    mailer = Mailer(_settings)
    bus = EventBus()
    password_reset.register(bus, mailer)

    app.state.bus = bus
    app.state.mailer = mailer
    app.state.auth = build_auth_service(_settings, store, mailer, emit=bus.emit)
    logger.info("Auth initialized (reset_email_delivery=%s)", _settings.reset_email_delivery)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    store.close()
    logger.info("StepAuth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="StepAuth API",
    description="Email/password registration, sessions, password reset and email verification.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


@app.middleware("http")
async def refresh_session_cookie(request: Request, call_next):
    """Re-issue the session cookie after require_session slid the expiry forward.

    Skipped when the step already wrote the cookie itself (login, logout).
    """
    response = await call_next(request)
    if getattr(request.state, "session_refreshed", False):
        cookies = response.headers.getlist("set-cookie")
        if not any(c.startswith(f"{SESSION_COOKIE_NAME}=") for c in cookies):
            set_session_cookie(
                response,
                request.state.session.token,
                _settings.session_expire_seconds,
                _settings.secure_cookies,
            )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(diagnostics_router)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(StepError)
async def step_error_handler(request: Request, exc: StepError) -> JSONResponse:
    """Render a StepError body verbatim (session middleware failures)."""
    return JSONResponse(status_code=exc.status_code, content=exc.body)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc))
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with a structured error when the body or query fails validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")).model_dump(),
    )
