"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The session token is read in priority order:
  1. "session_token" cookie -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients and mobile apps.

Both converge on AuthService.get_session(), which also applies sliding
expiry. When it pushes the expiry out, request.state.session_refreshed is
set and api/main.py re-issues the cookie on the way out. Protected steps
declare:

    @router.get("/api/profile")
    async def profile(ctx: SessionContext = Depends(require_session)): ...

Failures short-circuit with StepError so the body matches what clients of
the protected endpoints already expect:
  401 {"success": false, "error": "UNAUTHORIZED", ...}
  500 {"success": false, "error": "AUTH_SERVICE_ERROR", ...}

Layer rule: no imports from api/ or events/. fastapi is allowed here
because this module is part of the dependency injection system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Session, User
from auth.service import AuthService
from auth.tokens import SESSION_COOKIE_NAME
from core.errors import StepError

logger = logging.getLogger("stepauth.auth")


@dataclass
class SessionContext:
    user: User
    session: Session


def session_token_from_request(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def require_session(request: Request) -> SessionContext:
    """Require a live session. Raises StepError 401/500 otherwise."""
    auth: AuthService = request.app.state.auth
    token = session_token_from_request(request)
    try:
        result = auth.get_session(token) if token else None
    except SQLAlchemyError as exc:
        logger.exception("Authentication middleware error")
        raise StepError(
            500,
            {
                "success": False,
                "error": "AUTH_SERVICE_ERROR",
                "message": "Authentication service unavailable",
            },
        ) from exc

    if result is None:
        raise StepError(
            401,
            {
                "success": False,
                "error": "UNAUTHORIZED",
                "message": "Valid authentication required",
            },
        )

    request.state.user = result.user
    request.state.session = result.session
    request.state.session_refreshed = result.refreshed
    return SessionContext(user=result.user, session=result.session)
