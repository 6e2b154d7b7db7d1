"""
auth/accounts.py -- Account business rules layered over the BaaS.

The BaaS stores users, checks passwords and issues sessions. This module adds
the rules the BaaS does not enforce on its own:

  - signup always creates role "user", whatever the caller asked for
  - self-update never touches role
  - an admin cannot change their own role or delete their own account
  - profile pictures are type- and size-checked before storage is contacted
  - every login failure looks the same to the caller

Both the JSON API and the HTML UI call these functions, so the rules hold
regardless of which surface a request came through.

Errors:
  AccountError subclasses carry the HTTP status and message the caller sees.
  core.backend.BackendError propagates unchanged for upstream failures.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from auth.models import ROLES, ProfilePicture, User
from core.backend import BackendError, ParseClient

logger = logging.getLogger("secureauth.auth")

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif"})
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024

# Self-update may only forward these fields to the BaaS.
_SELF_EDITABLE = ("username", "email", "password")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AccountError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCredentials(AccountError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Invalid username or password")


class InvalidSession(AccountError):
    status_code = 401

    def __init__(self, message: str = "Invalid session") -> None:
        super().__init__(message)


class ForbiddenAction(AccountError):
    status_code = 403


class InvalidUpload(AccountError):
    pass


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def user_from_record(record: dict[str, Any]) -> User:
    """Map a raw BaaS user record onto the User contract.

    Missing role reads as "user" and missing emailVerified as False, matching
    how records created outside this app (e.g. in the BaaS dashboard) behave.
    """
    picture = record.get("profilePicture")
    profile_picture: Optional[ProfilePicture] = None
    if isinstance(picture, dict) and picture.get("url"):
        profile_picture = ProfilePicture(name=picture.get("name", ""), url=picture["url"])
    role = record.get("role") or "user"
    return User(
        object_id=record.get("objectId", ""),
        username=record.get("username", ""),
        email=record.get("email", ""),
        role=role if role in ROLES else "user",
        email_verified=bool(record.get("emailVerified", False)),
        profile_picture=profile_picture,
        created_at=record.get("createdAt", ""),
        updated_at=record.get("updatedAt") or record.get("createdAt", ""),
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def sign_up(backend: ParseClient, username: str, email: str, password: str) -> tuple[User, str]:
    """Create an account. Role is always "user" -- there is no parameter for it."""
    record = backend.sign_up(username, email, password, role="user")
    logger.info("Signed up %s", username)
    return user_from_record(record), record.get("sessionToken", "")


def log_in(backend: ParseClient, username: str, password: str) -> tuple[User, str]:
    """Check credentials at the BaaS.

    Unknown user, wrong password and upstream failure all raise the same
    InvalidCredentials so the response never reveals which one happened.
    """
    try:
        record = backend.log_in(username, password)
    except BackendError as exc:
        logger.info("Login failed for %s (code=%s)", username, exc.code)
        raise InvalidCredentials() from exc
    return user_from_record(record), record.get("sessionToken", "")


def log_out(backend: ParseClient, session_token: str) -> None:
    backend.log_out(session_token)


def resolve_session(backend: ParseClient, session_token: str) -> User:
    """Resolve an opaque session token to its user, or raise InvalidSession."""
    try:
        record = backend.get_me(session_token)
    except BackendError as exc:
        raise InvalidSession() from exc
    if not record.get("objectId"):
        raise InvalidSession()
    return user_from_record(record)


def fetch_user(backend: ParseClient, object_id: str) -> User:
    """Re-read a user with the master key so role reflects the live record."""
    return user_from_record(backend.get_user(object_id))


def request_password_reset(backend: ParseClient, email: str) -> None:
    backend.request_password_reset(email)


def request_verification_email(backend: ParseClient, email: str) -> None:
    backend.request_verification_email(email)


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------


def update_self(backend: ParseClient, user: User, changes: dict[str, Any]) -> User:
    """Apply a partial profile update on behalf of the user themselves.

    role is dropped along with any other field outside _SELF_EDITABLE, so a
    user can never promote themselves through this path.
    """
    safe = {k: v for k, v in changes.items() if k in _SELF_EDITABLE and v}
    if "role" in changes:
        logger.warning("Stripped role from self-update by %s", user.username)
    if safe:
        backend.update_user(user.object_id, safe)
    return fetch_user(backend, user.object_id)


def delete_self(backend: ParseClient, user: User) -> None:
    backend.delete_user(user.object_id)
    logger.info("Account %s deleted by owner", user.username)


def validate_profile_picture(
    content_type: Optional[str],
    size: int,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> None:
    """Raise InvalidUpload unless the file is an allowed image within the size ceiling."""
    if (content_type or "").lower() not in ALLOWED_IMAGE_TYPES:
        raise InvalidUpload("Only image files (jpeg, jpg, png, gif) are allowed")
    if size > max_bytes:
        raise InvalidUpload(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")


def set_profile_picture(
    backend: ParseClient,
    user: User,
    filename: str,
    content: bytes,
    content_type: str,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> User:
    """Validate, store the image, then point the user's profilePicture at it."""
    validate_profile_picture(content_type, len(content), max_bytes)
    stored = backend.upload_file(filename, content, content_type.lower())
    backend.update_user(
        user.object_id,
        {"profilePicture": {"name": stored.get("name", filename), "url": stored.get("url", "")}},
    )
    return fetch_user(backend, user.object_id)


def remove_profile_picture(backend: ParseClient, user: User) -> User:
    backend.update_user(user.object_id, {"profilePicture": {"__op": "Delete"}})
    return fetch_user(backend, user.object_id)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


def list_users(backend: ParseClient) -> list[User]:
    return [user_from_record(r) for r in backend.list_users()]


def user_stats(users: list[User]) -> dict[str, int]:
    return {
        "totalUsers": len(users),
        "adminUsers": sum(1 for u in users if u.is_admin),
        "verifiedUsers": sum(1 for u in users if u.email_verified),
    }


def change_role(backend: ParseClient, actor: User, target_id: str, role: str) -> User:
    """Set another user's role. An admin may never change their own."""
    if target_id == actor.object_id:
        raise ForbiddenAction("Cannot change your own role")
    if role not in ROLES:
        raise AccountError("Role must be 'user' or 'admin'")
    backend.update_user(target_id, {"role": role})
    logger.info("%s set role of %s to %s", actor.username, target_id, role)
    return fetch_user(backend, target_id)


def delete_user(backend: ParseClient, actor: User, target_id: str) -> None:
    """Delete another user's account. An admin may never delete their own."""
    if target_id == actor.object_id:
        raise ForbiddenAction("Cannot delete your own account")
    backend.delete_user(target_id)
    logger.info("%s deleted user %s", actor.username, target_id)


def set_role_by_username(backend: ParseClient, username: str, role: str) -> User:
    """Operator bootstrap: set a role with the master key, no acting admin required.

    Signup never grants admin, so the first admin of a fresh deployment has to
    be made out-of-band. Only reachable from the command line.
    """
    if role not in ROLES:
        raise AccountError("Role must be 'user' or 'admin'")
    record = backend.find_user_by_username(username)
    if record is None:
        raise AccountError(f"No user named {username!r}")
    backend.update_user(record["objectId"], {"role": role})
    logger.warning("Role of %s set to %s from the command line", username, role)
    return fetch_user(backend, record["objectId"])
