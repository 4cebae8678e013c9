"""
tests/test_health.py -- Integration tests for GET /api/health and GET /test-db-connection.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' with a live store, 'error' when it fails
  - /test-db-connection reports the user count, or 500 without leaking detail
  - No authentication required
"""

from __future__ import annotations

from unittest.mock import patch

from conftest import register_user
from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(env):
    """Health endpoint returns 200 with status, version, and components."""
    resp = env.client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_reports_database_error(env):
    """A failing store flips components.database to 'error' but stays 200."""
    with patch.object(env.store, "count_users", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        resp = env.client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["components"]["database"] == "error"


def test_health_no_auth_required(env):
    """Health endpoint is accessible without any authentication headers."""
    resp = env.client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_db_connection_reports_user_count(env):
    register_user(env.client)
    resp = env.client.get("/test-db-connection")
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 1
    assert data["message"] == "Database connection successful. User count: 1"


def test_db_connection_failure_returns_500(env):
    with patch.object(env.store, "count_users", side_effect=OperationalError("SELECT", {}, Exception("secret dsn"))):
        resp = env.client.get("/test-db-connection")
    assert resp.status_code == 500
    body = resp.json()
    assert body == {"error": "Database connection failed. Please check backend logs for details."}
    assert "secret dsn" not in resp.text
