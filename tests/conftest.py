"""
tests/conftest.py -- Shared test fixtures for PropDesk tests.

This module provides:
  - make_store(): isolated named shared-memory SQLite UserStore
  - store / hasher / tokens / service: unit-level collaborators
  - api_client: TestClient wired to isolated stores through a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG and BCRYPT_ROUNDS must be set before any api/core import so
get_settings() auto-generates SECRET_KEY and hashing stays fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api.main, which calls get_settings() at import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
STRONG_PASSWORD = "Aa1!aaaa"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_store(name: str | None = None) -> UserStore:
    """Create a UserStore on its own named shared-memory SQLite database."""
    name = name or uuid.uuid4().hex
    return UserStore(f"sqlite:///file:test_auth_{name}?mode=memory&cache=shared&uri=true")


def make_user(hasher: PasswordHasher, email: str, role: Role = Role.LANDLORD, **overrides) -> User:
    """Build an unsaved User with sensible defaults and a real bcrypt hash."""
    fields = {
        "first_name": "Test",
        "last_name": "User",
        "email": email,
        "hashed_password": hasher.hash(overrides.pop("password", STRONG_PASSWORD)),
        "role": role,
    }
    fields.update(overrides)
    return User(**fields)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens(store: UserStore) -> TokenService:
    return TokenService(store, secret_key=TEST_SECRET, lifetime_seconds=3600)


@pytest.fixture
def service(store: UserStore, hasher: PasswordHasher, tokens: TokenService) -> AuthService:
    return AuthService(store, hasher, tokens)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-created test store into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        hasher = PasswordHasher(rounds=4)
        token_service = TokenService(user_store, secret_key=TEST_SECRET, lifetime_seconds=3600)
        app.state.user_store = user_store
        app.state.password_hasher = hasher
        app.state.token_service = token_service
        app.state.auth_service = AuthService(user_store, hasher, token_service)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for API integration tests.

    One TestClient per test module for speed; each module gets its own DB,
    so tests inside a module must use distinct email addresses.
    """
    user_store = make_store()
    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    user_store.close()


def register_payload(email: str, role: str = "LANDLORD", **overrides) -> dict:
    """Return a valid POST /auth/register body."""
    body = {
        "first_name": "Alice",
        "last_name": "Landlord",
        "email": email,
        "password": STRONG_PASSWORD,
        "role": role,
    }
    body.update(overrides)
    return body


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


B64URL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


def respell_last_char(token: str) -> str:
    """Flip the lowest bit of the token's final character.

    For an HS256 signature (32 bytes, 43 characters) that bit is padding,
    so the result decodes to the same bytes as the original.
    """
    index = B64URL_ALPHABET.index(token[-1])
    return token[:-1] + B64URL_ALPHABET[index ^ 1]
