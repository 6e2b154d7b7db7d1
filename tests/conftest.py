"""
tests/conftest.py -- Shared test fixtures for SecureAuth integration tests.

This module provides:
  - FakeBackend: in-memory stand-in for core.backend.ParseClient
  - _patch_lifespan(): wires a FakeBackend into app.state, bypassing real startup
  - backend / seeded: a fresh fake BaaS seeded with one admin and one user
  - api_client: TestClient for JSON API tests
  - web_client: TestClient with follow_redirects=False for web route tests

FakeBackend mirrors ParseClient's method names and raises BackendError the way
the real BaaS answers (code 101 for bad credentials and missing objects, 202
for a taken username, 209 for an invalid session token). Route handlers never
know the difference.

The DEBUG env var must be set before any core/auth import so get_settings()
tolerates missing BaaS credentials instead of raising ValueError.
"""

from __future__ import annotations

import itertools
import os
import secrets
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Optional

# CRITICAL: Set DEBUG before any auth/core import so get_settings() does not
# refuse to start without BaaS credentials.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from core.backend import BackendError

# Repeated logins across tests would otherwise trip the per-IP limits.
# TestRateLimit switches it back on for its own tests.
limiter.enabled = False

ADMIN_PASSWORD = "rootpass1"
USER_PASSWORD = "bobpass1"


# ---------------------------------------------------------------------------
# Fake BaaS
# ---------------------------------------------------------------------------


class FakeBackend:
    """In-memory Parse-compatible BaaS. Records are stored as the BaaS would return them."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.passwords: dict[str, str] = {}
        self.sessions: dict[str, str] = {}
        self.files: list[dict[str, Any]] = []
        self.objects: dict[str, list[dict[str, Any]]] = {}
        self.reset_requests: list[str] = []
        self.verification_requests: list[str] = []
        self.fail_objects = False
        self.closed = False
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    # -- helpers ----------------------------------------------------------

    def _now(self) -> str:
        tick = next(self._clock)
        return f"2024-01-01T00:{tick // 60:02d}:{tick % 60:02d}.000Z"

    def _new_session(self, object_id: str) -> str:
        token = f"r:{secrets.token_hex(8)}"
        self.sessions[token] = object_id
        return token

    def _public(self, object_id: str) -> dict[str, Any]:
        return dict(self.users[object_id])

    def _lookup(self, object_id: str) -> dict[str, Any]:
        if object_id not in self.users:
            raise BackendError("Object not found.", code=101, status_code=404)
        return self.users[object_id]

    def seed_user(self, username: str, email: str, password: str, role: str = "user") -> tuple[str, str]:
        """Create a user directly (bypassing signup rules). Returns (objectId, sessionToken)."""
        record = self.sign_up(username, email, password, role=role)
        return record["objectId"], record["sessionToken"]

    # -- authentication ---------------------------------------------------

    def sign_up(self, username: str, email: str, password: str, role: str = "user") -> dict[str, Any]:
        if any(u["username"] == username for u in self.users.values()):
            raise BackendError("Account already exists for this username.", code=202, status_code=400)
        if any(u["email"] == email for u in self.users.values()):
            raise BackendError("Account already exists for this email address.", code=203, status_code=400)
        object_id = f"u{next(self._ids):04d}"
        now = self._now()
        self.users[object_id] = {
            "objectId": object_id,
            "username": username,
            "email": email,
            "role": role,
            "emailVerified": False,
            "createdAt": now,
            "updatedAt": now,
        }
        self.passwords[object_id] = password
        record = self._public(object_id)
        record["sessionToken"] = self._new_session(object_id)
        return record

    def log_in(self, username: str, password: str) -> dict[str, Any]:
        for object_id, user in self.users.items():
            if user["username"] == username and self.passwords[object_id] == password:
                record = self._public(object_id)
                record["sessionToken"] = self._new_session(object_id)
                return record
        raise BackendError("Invalid username/password.", code=101, status_code=404)

    def log_out(self, session_token: str) -> None:
        if self.sessions.pop(session_token, None) is None:
            raise BackendError("Invalid session token", code=209, status_code=400)

    def get_me(self, session_token: str) -> dict[str, Any]:
        object_id = self.sessions.get(session_token)
        if object_id is None or object_id not in self.users:
            raise BackendError("Invalid session token", code=209, status_code=400)
        record = self._public(object_id)
        record["sessionToken"] = session_token
        return record

    def request_password_reset(self, email: str) -> None:
        if not any(u["email"] == email for u in self.users.values()):
            raise BackendError(f"No user found with email {email}.", code=205, status_code=400)
        self.reset_requests.append(email)

    def request_verification_email(self, email: str) -> None:
        if not any(u["email"] == email for u in self.users.values()):
            raise BackendError(f"No user found with email {email}.", code=205, status_code=400)
        self.verification_requests.append(email)

    # -- users ------------------------------------------------------------

    def get_user(self, object_id: str) -> dict[str, Any]:
        self._lookup(object_id)
        return self._public(object_id)

    def list_users(self, limit: int = 1000) -> list[dict[str, Any]]:
        records = sorted(self.users.values(), key=lambda u: u["createdAt"], reverse=True)
        return [dict(r) for r in records[:limit]]

    def find_user_by_username(self, username: str) -> Optional[dict[str, Any]]:
        for object_id, user in self.users.items():
            if user["username"] == username:
                return self._public(object_id)
        return None

    def update_user(self, object_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        record = self._lookup(object_id)
        for key, value in fields.items():
            if key == "password":
                self.passwords[object_id] = value
            elif isinstance(value, dict) and value.get("__op") == "Delete":
                record.pop(key, None)
            else:
                record[key] = value
        record["updatedAt"] = self._now()
        return {"updatedAt": record["updatedAt"]}

    def delete_user(self, object_id: str) -> None:
        self._lookup(object_id)
        del self.users[object_id]
        self.passwords.pop(object_id, None)
        self.sessions = {t: uid for t, uid in self.sessions.items() if uid != object_id}

    # -- files and objects ------------------------------------------------

    def upload_file(self, filename: str, content: bytes, content_type: str) -> dict[str, Any]:
        name = f"{secrets.token_hex(4)}_{filename}"
        self.files.append({"name": name, "content": content, "content_type": content_type})
        return {"name": name, "url": f"https://files.example.test/{name}"}

    def create_object(self, class_name: str, fields: dict[str, Any]) -> dict[str, Any]:
        if self.fail_objects:
            raise BackendError("Service unavailable", status_code=503)
        self.objects.setdefault(class_name, []).append(dict(fields))
        return {"objectId": f"o{next(self._ids):04d}", "createdAt": self._now()}

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Lifespan patch
# ---------------------------------------------------------------------------


def _patch_lifespan(backend: FakeBackend):
    """Return an async context manager that replaces the real lifespan.

    Wires the fake BaaS into app.state so TestClient routes never open a
    network connection.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.backend = backend
        yield
        backend.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures -- function scoped so every test starts from the same two accounts
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def seeded(backend: FakeBackend) -> SimpleNamespace:
    """Seed one admin ("root") and one regular user ("bob")."""
    admin_id, admin_token = backend.seed_user("root", "root@example.com", ADMIN_PASSWORD, role="admin")
    user_id, user_token = backend.seed_user("bob", "bob@example.com", USER_PASSWORD)
    return SimpleNamespace(
        admin_id=admin_id,
        admin_token=admin_token,
        user_id=user_id,
        user_token=user_token,
        admin_password=ADMIN_PASSWORD,
        user_password=USER_PASSWORD,
    )


@pytest.fixture
def api_client(backend: FakeBackend, seeded: SimpleNamespace) -> Generator[TestClient, None, None]:
    """TestClient over the real app with the fake BaaS behind it."""
    app.router.lifespan_context = _patch_lifespan(backend)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def web_client(backend: FakeBackend, seeded: SimpleNamespace) -> Generator[TestClient, None, None]:
    """TestClient for HTML routes.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows the redirect.
    """
    app.router.lifespan_context = _patch_lifespan(backend)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client
