"""
api/routes/users.py -- Steps that describe the signed-in user.

Routes:
  GET /api/profile   -- profile fields from the session's user
  GET /api/users/me  -- fresh user row from the store

Both require a session (auth.dependencies.require_session).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from auth.dependencies import SessionContext, require_session

logger = logging.getLogger("stepauth.api")

router = APIRouter()


@router.get("/api/profile")
async def get_profile(ctx: SessionContext = Depends(require_session)) -> dict:
    user = ctx.user
    return {
        "success": True,
        "data": {
            "profile": {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "image": user.image,
                "emailVerified": user.email_verified,
                "createdAt": user.created_at,
            }
        },
    }


@router.get("/api/users/me")
def get_current_user(request: Request, ctx: SessionContext = Depends(require_session)) -> JSONResponse:
    """Re-read the user from the store rather than trusting the session snapshot."""
    try:
        user = request.app.state.auth.store.get_user_by_id(ctx.user.id)
    except SQLAlchemyError:
        logger.exception("Get user error")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "FETCH_USER_FAILED", "message": "Failed to retrieve user data"},
        )

    if user is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "USER_NOT_FOUND", "message": "User data not found"},
        )

    return JSONResponse(
        content={
            "success": True,
            "data": {
                "user": {
                    "id": user.id,
                    "email": user.email,
                    "name": user.name,
                    "emailVerified": user.email_verified,
                    "createdAt": user.created_at,
                    "updatedAt": user.updated_at,
                }
            },
        }
    )
