"""
tests/test_purge.py -- Unit tests for the background expiry purge in api/main.py.

Covers:
  - one round removes expired sessions and expired verification rows
  - a database error is logged and does not escape, so the loop keeps running
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from conftest import make_store
from sqlalchemy.exc import OperationalError

from api.main import _purge_expired
from auth.models import Session, Verification


@pytest.fixture
def store():
    s = make_store()
    yield s
    s.close()


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


def test_purge_removes_expired_sessions_and_verifications(store) -> None:
    store.create_session(Session(id="s1", token="old", user_id="u1", expires_at=_iso(timedelta(hours=-1))))
    store.create_session(Session(id="s2", token="live", user_id="u1", expires_at=_iso(timedelta(hours=1))))
    store.create_verification(
        Verification(id="v1", identifier="reset-password:old", value="u1", expires_at=_iso(timedelta(hours=-1)))
    )

    _purge_expired(store)

    assert store.get_session_by_token("old") is None
    assert store.get_session_by_token("live") is not None
    assert store.get_verification("reset-password:old") is None


def test_purge_database_error_is_logged_not_raised(store, caplog) -> None:
    error = OperationalError("DELETE", {}, Exception("database is locked"))
    with patch.object(store, "purge_expired_sessions", side_effect=error):
        with caplog.at_level(logging.ERROR, logger="stepauth.api"):
            _purge_expired(store)
    assert "Expiry purge failed" in caplog.text


def test_purge_runs_again_after_a_failed_round(store) -> None:
    store.create_session(Session(id="s1", token="old", user_id="u1", expires_at=_iso(timedelta(hours=-1))))
    error = OperationalError("DELETE", {}, Exception("database is locked"))
    with patch.object(store, "purge_expired_sessions", side_effect=error):
        _purge_expired(store)
    assert store.get_session_by_token("old") is not None

    _purge_expired(store)
    assert store.get_session_by_token("old") is None
