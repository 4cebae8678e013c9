"""
api/routes/diagnostics.py -- Liveness and database connectivity checks.

Routes:
  GET /api/health          -- app + database component status, always 200
  GET /test-db-connection  -- counts users; 500 if the database is unreachable

No rate limit: health checks from load balancers must not be throttled.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import HealthResponse

logger = logging.getLogger("stepauth.api")

VERSION = "0.1.0"

router = APIRouter()


@router.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and whether the database answers."""
    database = "ok"
    try:
        request.app.state.auth.count_users()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})


@router.get("/test-db-connection")
def test_db_connection(request: Request) -> JSONResponse:
    try:
        count = request.app.state.auth.count_users()
    except SQLAlchemyError as exc:
        logger.error("Database connection failed. Ensure DATABASE_URL is correct: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Database connection failed. Please check backend logs for details."},
        )
    logger.info("Database check successful. User count: %d", count)
    return JSONResponse(content={"message": f"Database connection successful. User count: {count}", "count": count})
