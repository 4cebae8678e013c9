"""
tests/test_user_routes.py -- Integration tests for GET /api/profile and GET /api/users/me.

Covers:
  - both routes return the signed-in user's fields
  - /api/users/me re-reads the store (reflects later updates)
  - 401 envelope without a session, 404 when the user row is gone
  - 500 AUTH_SERVICE_ERROR when the session lookup itself fails
"""

from __future__ import annotations

from unittest.mock import patch

from conftest import register_user
from sqlalchemy.exc import OperationalError


def test_profile_returns_user_fields(env):
    user = register_user(env.client).json()["user"]
    resp = env.client.get("/api/profile")
    assert resp.status_code == 200
    profile = resp.json()["data"]["profile"]
    assert profile["id"] == user["id"]
    assert profile["email"] == "ada@example.com"
    assert profile["name"] == "Ada"
    assert profile["image"] is None
    assert profile["emailVerified"] is False
    assert profile["createdAt"]


def test_profile_requires_session(env):
    resp = env.client.get("/api/profile")
    assert resp.status_code == 401
    assert resp.json()["error"] == "UNAUTHORIZED"


def test_users_me_reads_fresh_row(env):
    user = register_user(env.client).json()["user"]
    env.store.update_user(user["id"], name="Ada Lovelace")
    resp = env.client.get("/api/users/me")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    me = body["data"]["user"]
    assert me["name"] == "Ada Lovelace"
    assert set(me) == {"id", "email", "name", "emailVerified", "createdAt", "updatedAt"}


def test_users_me_missing_row_returns_404(env):
    register_user(env.client)
    with patch.object(env.store, "get_user_by_id", side_effect=[env.store.get_user_by_email("ada@example.com"), None]):
        resp = env.client.get("/api/users/me")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "USER_NOT_FOUND", "message": "User data not found"}


def test_session_lookup_failure_returns_500(env):
    register_user(env.client)
    with patch.object(env.store, "get_session_by_token", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        resp = env.client.get("/api/users/me")
    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "error": "AUTH_SERVICE_ERROR",
        "message": "Authentication service unavailable",
    }
