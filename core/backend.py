"""
core/backend.py -- REST client for the hosted Parse-compatible BaaS.

Every durable operation (user CRUD, login, logout, session resolution, file
storage, password-reset and verification email dispatch) is delegated to the
BaaS through this module. Nothing here hashes passwords or interprets session
tokens -- tokens are opaque and always forwarded.

Credential headers:
  X-Parse-Application-Id  -- every call
  X-Parse-REST-API-Key    -- every call
  X-Parse-Master-Key      -- privileged calls only (master=True)
  X-Parse-Session-Token   -- calls made on behalf of a signed-in user

Errors: any non-2xx response or transport failure raises BackendError carrying
the BaaS-provided message. There are no retries; each call is bounded by the
configured timeout.

Layer rule: core/ may not import from api/, web/, auth/, or client/.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional
from urllib.parse import quote

import requests

from core.config import Settings

logger = logging.getLogger("secureauth.backend")

# Parse file names may only contain these characters.
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class BackendError(Exception):
    """An error reported by, or while reaching, the BaaS.

    message      -- human readable text, passed through to API clients.
    code         -- Parse error code when the BaaS supplied one (e.g. 101, 209).
    status_code  -- HTTP status from the BaaS, None for transport failures.
    """

    def __init__(self, message: str, code: Optional[int] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ParseClient:
    """Thin wrapper over the Parse REST API.

    Usage:
        client = ParseClient.from_settings(get_settings())
        record = client.log_in("alice", "secret1")
        me = client.get_me(record["sessionToken"])
        client.close()

    Methods return the decoded JSON body (a dict) exactly as the BaaS sent it.
    Mapping to the User contract happens in auth/accounts.py.
    """

    def __init__(
        self,
        server_url: str,
        application_id: str,
        rest_api_key: str,
        master_key: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self._application_id = application_id
        self._rest_api_key = rest_api_key
        self._master_key = master_key
        self.timeout = timeout
        # One pooled session per client. max_redirects=3 replaces the requests
        # default of 30 -- the BaaS is a known endpoint.
        self._session = requests.Session()
        self._session.max_redirects = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "ParseClient":
        return cls(
            server_url=settings.parse_server_url,
            application_id=settings.parse_application_id,
            rest_api_key=settings.parse_rest_api_key,
            master_key=settings.parse_master_key,
            timeout=settings.baas_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(
        self,
        master: bool = False,
        session_token: Optional[str] = None,
        content_type: str = "application/json",
    ) -> dict[str, str]:
        headers = {
            "X-Parse-Application-Id": self._application_id,
            "X-Parse-REST-API-Key": self._rest_api_key,
            "Content-Type": content_type,
        }
        if master:
            headers["X-Parse-Master-Key"] = self._master_key
        if session_token:
            headers["X-Parse-Session-Token"] = session_token
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        master: bool = False,
        session_token: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        data: Optional[bytes] = None,
        content_type: str = "application/json",
        extra_headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        headers = self._headers(master=master, session_token=session_token, content_type=content_type)
        if extra_headers:
            headers.update(extra_headers)
        url = f"{self.server_url}{path}"
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("BaaS %s %s failed: %s", method, path, e)
            raise BackendError("Unable to reach the authentication service") from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}

        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            logger.info("BaaS %s %s returned %d (code=%s)", method, path, resp.status_code, code)
            raise BackendError(
                message or f"Request failed with status {resp.status_code}",
                code=code,
                status_code=resp.status_code,
            )
        return body if isinstance(body, dict) else {}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def sign_up(self, username: str, email: str, password: str, role: str = "user") -> dict[str, Any]:
        """Create a user and return its record, including a fresh sessionToken.

        POST /users only echoes objectId, createdAt and sessionToken, so the
        submitted profile fields are merged back in. A new record is never
        email-verified and its updatedAt equals createdAt.
        """
        created = self._request(
            "POST",
            "/users",
            master=True,
            json={"username": username, "email": email, "password": password, "role": role},
            extra_headers={"X-Parse-Revocable-Session": "1"},
        )
        record = {"username": username, "email": email, "role": role, "emailVerified": False}
        record.update(created)
        record.setdefault("updatedAt", record.get("createdAt"))
        return record

    def log_in(self, username: str, password: str) -> dict[str, Any]:
        """Verify credentials at the BaaS. Returns the user record with sessionToken."""
        return self._request(
            "POST",
            "/login",
            json={"username": username, "password": password},
            extra_headers={"X-Parse-Revocable-Session": "1"},
        )

    def log_out(self, session_token: str) -> None:
        """Revoke a session token."""
        self._request("POST", "/logout", session_token=session_token)

    def get_me(self, session_token: str) -> dict[str, Any]:
        """Resolve a session token to the user it belongs to."""
        return self._request("GET", "/users/me", session_token=session_token)

    def request_password_reset(self, email: str) -> None:
        self._request("POST", "/requestPasswordReset", json={"email": email})

    def request_verification_email(self, email: str) -> None:
        self._request("POST", "/verificationEmailRequest", json={"email": email})

    # ------------------------------------------------------------------
    # Users (master key)
    # ------------------------------------------------------------------

    def get_user(self, object_id: str) -> dict[str, Any]:
        return self._request("GET", f"/users/{quote(object_id, safe='')}", master=True)

    def list_users(self, limit: int = 1000) -> list[dict[str, Any]]:
        """Return every user record, newest first."""
        body = self._request("GET", "/users", master=True, params={"limit": limit, "order": "-createdAt"})
        return list(body.get("results", []))

    def find_user_by_username(self, username: str) -> Optional[dict[str, Any]]:
        body = self._request(
            "GET",
            "/users",
            master=True,
            params={"where": json.dumps({"username": username}), "limit": 1},
        )
        results = body.get("results", [])
        return results[0] if results else None

    def update_user(self, object_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update. The BaaS replies with only {updatedAt}."""
        return self._request("PUT", f"/users/{quote(object_id, safe='')}", master=True, json=fields)

    def delete_user(self, object_id: str) -> None:
        self._request("DELETE", f"/users/{quote(object_id, safe='')}", master=True)

    # ------------------------------------------------------------------
    # Files and objects
    # ------------------------------------------------------------------

    def upload_file(self, filename: str, content: bytes, content_type: str) -> dict[str, Any]:
        """Store a file and return {name, url}. The BaaS prefixes name with a unique id."""
        safe_name = _UNSAFE_FILENAME_CHARS.sub("_", filename or "") or "upload"
        return self._request(
            "POST",
            f"/files/{safe_name}",
            data=content,
            content_type=content_type,
        )

    def create_object(self, class_name: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Insert a row into a BaaS class. Returns {objectId, createdAt}."""
        return self._request("POST", f"/classes/{quote(class_name, safe='')}", master=True, json=fields)

    def close(self) -> None:
        self._session.close()
