"""
tests/conftest.py -- Shared test fixtures for Cash Cow unit and integration tests.

This module provides:
  - engine:       a fresh in-memory database per test, schema created
  - make_user():  inserts a user straight through the stores (optionally activated,
                  with extra permissions and a bearer token)
  - api_client:   TestClient over the real app with a patched lifespan, an
                  isolated database and a MagicMock mailer

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

BCRYPT_ROUNDS and RATE_LIMIT_ENABLED must be set before any core/auth/api
import so the cached Settings picks them up.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from unittest.mock import MagicMock

# CRITICAL: set before any project import -- get_settings() is cached on first call.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app, init_app_state
from auth.models import CandidatePassword, TokenScope, User
from auth.passwords import set_password
from auth.store import PermissionStore, TokenStore, UserStore
from auth.tokens import issue_token
from core.db import create_db_engine, create_schema

DEFAULT_PASSWORD = "Pa55word!"


def memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}.{uuid.uuid4().hex[:10]}@example.com"


@dataclass
class TestAccount:
    __test__ = False  # not a test class

    user: User
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def create_account(
    engine: Engine,
    email: str | None = None,
    *,
    activated: bool = True,
    grants: tuple[str, ...] = ("livestock:read", "livestock:write"),
    password: str = DEFAULT_PASSWORD,
) -> TestAccount:
    """Insert a user, grant permissions and issue an authentication token."""
    users = UserStore(engine)
    user = User(
        email=email or unique_email(),
        first_name="Test",
        last_name="Farmer",
        activated=activated,
        password=set_password(CandidatePassword(password)),
    )
    users.insert(user)
    perms = PermissionStore(engine)
    perms.ensure_defaults()
    perms.grant(user.id, *grants)
    token = issue_token(TokenStore(engine), user.id, timedelta(hours=1), TokenScope.AUTHENTICATION)
    return TestAccount(user=user, token=token.plaintext)


# ---------------------------------------------------------------------------
# Store-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """A fresh, isolated database with the full schema."""
    eng = create_db_engine(memory_db_url("unit"))
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def token_store(engine: Engine) -> TokenStore:
    return TokenStore(engine)


@pytest.fixture
def permission_store(engine: Engine) -> PermissionStore:
    store = PermissionStore(engine)
    store.ensure_defaults()
    return store


@pytest.fixture
def make_user(user_store: UserStore):
    """Factory inserting a user with a valid password; returns the stored User."""

    def _make(email: str | None = None, **fields) -> User:
        user = User(
            email=email or unique_email(),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "Farmer"),
            password=set_password(CandidatePassword(fields.pop("password", DEFAULT_PASSWORD))),
            **fields,
        )
        return user_store.insert(user)

    return _make


# ---------------------------------------------------------------------------
# API fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine and a mock mailer into app.state through the same
    init_app_state() the real lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, engine, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, Engine, MagicMock], None, None]:
    """Yield (client, engine, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but an isolated in-memory database. The mailer is
    a MagicMock: tests read issued token plaintexts from its call arguments.
    """
    engine = create_db_engine(memory_db_url("api"))
    mailer = MagicMock()
    app.router.lifespan_context = _patch_lifespan(engine, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, engine, mailer

    engine.dispose()


@pytest.fixture
def make_account(api_client):
    """Factory creating accounts in the api_client database. See create_account()."""
    _, engine, _ = api_client

    def _make(**kwargs) -> TestAccount:
        return create_account(engine, **kwargs)

    return _make
