"""
client/portal.py -- Typed HTTP client for the SecureAuth proxy.

Turns user actions into calls against the /api surface and keeps the client
side of the session:

  - user           -- the one in-memory User (or None when signed out)
  - session token  -- persisted by TokenStore so a later process can resume

restore() is the "on start" step: a stored token is resolved via
GET /api/auth/me; if that fails the token is cleared silently and the client
is simply signed out.

Admin helpers only save a round trip for non-admins. The server's admin guard
is the real boundary.

Layer rule: client/ talks to the proxy over HTTP only. It does not import
from api/, auth/, core/, or web/.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Optional, TypedDict

import requests

logger = logging.getLogger("secureauth.client")

_DEFAULT_TOKEN_FILE = Path.home() / ".secureauth" / "session"


class ProfilePictureDict(TypedDict):
    name: str
    url: str


class UserDict(TypedDict, total=False):
    objectId: str
    username: str
    email: str
    role: str
    emailVerified: bool
    profilePicture: Optional[ProfilePictureDict]
    createdAt: str
    updatedAt: str


class PortalError(Exception):
    """A non-2xx answer from the proxy. message is the server's {"error": ...} text."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TokenStore:
    """Session token persisted in a single user-readable file."""

    def __init__(self, path: Path = _DEFAULT_TOKEN_FILE) -> None:
        self.path = path

    def load(self) -> Optional[str]:
        try:
            token = self.path.read_text().strip()
        except OSError:
            return None
        return token or None

    def save(self, token: str) -> None:
        """Write the token into a file only the owner can read, from the first byte on."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        # O_CREAT leaves the mode of an existing file alone.
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as fh:
            fh.write(token)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class PortalClient:
    """Client-side session plus one method per proxy endpoint.

    Usage:
        client = PortalClient("http://localhost:5000")
        client.restore()                  # resume a stored session, if any
        client.login("alice", "secret1")
        client.update_profile(email="alice@example.com")
        client.logout()
    """

    def __init__(
        self,
        base_url: str,
        token_store: Optional[TokenStore] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_store = token_store or TokenStore()
        self.timeout = timeout
        self._http = session or requests.Session()
        self.user: Optional[UserDict] = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @property
    def session_token(self) -> Optional[str]:
        return self.token_store.load()

    @property
    def is_admin(self) -> bool:
        return bool(self.user and self.user.get("role") == "admin")

    def _request(self, method: str, path: str, auth: bool = False, **kwargs: Any) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if auth:
            token = self.session_token
            if not token:
                raise PortalError("Not authenticated", status_code=401)
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self._http.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise PortalError(f"Could not reach {self.base_url}: {e}") from e
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise PortalError(message or f"Request failed with status {resp.status_code}", resp.status_code)
        return body if isinstance(body, dict) else {}

    def _start_session(self, body: dict[str, Any]) -> UserDict:
        self.token_store.save(body["sessionToken"])
        self.user = body["user"]
        return self.user

    def _end_session(self) -> None:
        self.token_store.clear()
        self.user = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def restore(self) -> Optional[UserDict]:
        """Resolve a stored token to a user. A stale token is dropped without raising."""
        if not self.session_token:
            return None
        try:
            self.user = self._request("GET", "/api/auth/me", auth=True)
        except PortalError as e:
            logger.info("Stored session no longer valid (%s); clearing it", e.message)
            self._end_session()
            return None
        return self.user

    def signup(self, username: str, email: str, password: str) -> UserDict:
        body = self._request(
            "POST", "/api/auth/signup", json={"username": username, "email": email, "password": password}
        )
        return self._start_session(body)

    def login(self, username: str, password: str) -> UserDict:
        body = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        return self._start_session(body)

    def logout(self) -> None:
        """Sign out locally even when the server call fails."""
        try:
            self._request("POST", "/api/auth/logout", auth=True)
        finally:
            self._end_session()

    def request_password_reset(self, email: str) -> None:
        self._request("POST", "/api/auth/reset-password", json={"email": email})

    def resend_verification_email(self, email: str) -> None:
        self._request("POST", "/api/auth/verify-email", json={"email": email})

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def me(self) -> UserDict:
        self.user = self._request("GET", "/api/auth/me", auth=True)
        return self.user

    def update_profile(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> UserDict:
        changes = {k: v for k, v in (("username", username), ("email", email), ("password", password)) if v}
        self.user = self._request("PUT", "/api/auth/me", auth=True, json=changes)
        return self.user

    def delete_account(self) -> None:
        self._request("DELETE", "/api/auth/me", auth=True)
        self._end_session()

    def upload_profile_picture(self, filename: str, fileobj: BinaryIO, content_type: str) -> UserDict:
        self.user = self._request(
            "POST",
            "/api/auth/profile-picture",
            auth=True,
            files={"profilePicture": (filename, fileobj, content_type)},
        )
        return self.user

    def delete_profile_picture(self) -> UserDict:
        self.user = self._request("DELETE", "/api/auth/profile-picture", auth=True)
        return self.user

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def list_users(self) -> list[UserDict]:
        return list(self._request("GET", "/api/users", auth=True).get("results", []))

    def user_stats(self) -> dict[str, int]:
        return self._request("GET", "/api/users/stats", auth=True)

    def update_user_role(self, user_id: str, role: str) -> UserDict:
        return self._request("PUT", f"/api/users/{user_id}/role", auth=True, json={"role": role})

    def delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/api/users/{user_id}", auth=True)

    def close(self) -> None:
        self._http.close()
