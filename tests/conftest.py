"""
tests/conftest.py -- Shared test fixtures for StepAuth.

This module provides:
  - FakeMailer: records EmailData instead of talking to SMTP
  - make_store(): isolated shared-memory SQLite AuthStore
  - make_service(): AuthService over a fresh store with overridable settings
  - env: TestClient with a patched lifespan wired to a fresh store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread.

Environment variables must be set before any api/auth/core import so
get_settings() auto-generates SECRET_KEY (DEBUG) and accepts the test host.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.setup import build_auth_service
from auth.store import AuthStore
from core.config import get_settings
from core.mailer import EmailData, MailError
from events import password_reset
from events.bus import EventBus

# ---------------------------------------------------------------------------
# Fakes and helpers
# ---------------------------------------------------------------------------


@dataclass
class FakeMailer:
    """Stands in for core.mailer.Mailer. Set fail=True to simulate SMTP errors."""

    sent: list[EmailData] = field(default_factory=list)
    fail: bool = False

    def send(self, data: EmailData) -> str:
        if self.fail:
            raise MailError("Email send failed: simulated outage")
        self.sent.append(data)
        return f"<{len(self.sent)}@test>"

    def last_to(self, address: str) -> EmailData:
        matches = [m for m in self.sent if m.to == address]
        assert matches, f"no email sent to {address}; sent={[m.to for m in self.sent]}"
        return matches[-1]


def make_store() -> AuthStore:
    return AuthStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def make_service(mailer: FakeMailer | None = None, **overrides) -> AuthService:
    """AuthService over a fresh store, with Settings fields overridden by keyword."""
    settings = get_settings().model_copy(update=overrides)
    bus = EventBus()
    mailer = mailer or FakeMailer()
    password_reset.register(bus, mailer)
    return build_auth_service(settings, make_store(), mailer, emit=bus.emit)


def _patch_lifespan(store: AuthStore, mailer: FakeMailer, bus: EventBus):
    """Return a lifespan that wires test doubles into app.state.

    purge_task is a long-sleeping real Task because shutdown calls .cancel().
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.bus = bus
        app.state.mailer = mailer
        app.state.auth = build_auth_service(get_settings(), store, mailer, emit=bus.emit)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def service(mailer: FakeMailer) -> Generator[AuthService, None, None]:
    svc = make_service(mailer)
    yield svc
    svc.store.close()


@dataclass
class ClientEnv:
    client: TestClient
    store: AuthStore
    mailer: FakeMailer
    bus: EventBus

    @property
    def auth(self) -> AuthService:
        return self.client.app.state.auth


@pytest.fixture
def env(mailer: FakeMailer) -> Generator[ClientEnv, None, None]:
    """Yield a ClientEnv with a fresh database per test.

    Function scope on purpose: TestClient keeps cookies between requests,
    so a login in one test would otherwise authenticate the next.
    """
    store = make_store()
    bus = EventBus()
    password_reset.register(bus, mailer)
    app.router.lifespan_context = _patch_lifespan(store, mailer, bus)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield ClientEnv(client=client, store=store, mailer=mailer, bus=bus)

    store.close()


def register_user(client: TestClient, email: str = "ada@example.com", password: str = "correct-horse-1", name: str = "Ada"):
    """POST /auth/register and return the response."""
    return client.post("/auth/register", json={"name": name, "email": email, "password": password})
