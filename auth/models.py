"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The BaaS owns the
records; accounts.py maps raw BaaS JSON into these shapes and the api/ layer
maps them onto the HTTP contract.

Layer rule: no imports from api/, web/, client/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

ROLES = ("user", "admin")


@dataclass
class ProfilePicture:
    """Reference to a file held in BaaS storage."""

    name: str
    url: str


@dataclass
class User:
    """A BaaS user record reshaped into the stable User contract.

    role is "user" or "admin"; records without a role are treated as "user".
    created_at / updated_at are the ISO 8601 strings the BaaS returns.
    """

    object_id: str
    username: str
    email: str
    role: str = "user"
    email_verified: bool = False
    profile_picture: ProfilePicture | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class ActivityType(str, Enum):
    signup = "signup"
    login = "login"
    logout = "logout"
    profile_update = "profile_update"
    account_delete = "account_delete"
    password_reset_request = "password_reset_request"
    verification_email_request = "verification_email_request"
    profile_picture_upload = "profile_picture_upload"
    profile_picture_delete = "profile_picture_delete"
    role_change = "role_change"
    user_delete = "user_delete"


@dataclass
class ActivityLog:
    """One append-only audit entry, stored in the BaaS ActivityLog class.

    ip_address / user_agent / metadata are optional context; an entry is
    still written when the request carried none of them.
    """

    user_id: str
    username: str
    activity_type: ActivityType
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict = field(default_factory=dict)
