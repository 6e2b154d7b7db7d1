"""
auth/schemas.py -- Input validation for account operations.

Shared by the JSON API (api/routes/) and the HTML forms (web/routes.py) so
both surfaces enforce identical rules and produce identical messages.

Every field carries a default and validate_default=True so that a missing
field fails with the same human-readable message as an invalid one
("Username must be at least 3 characters" rather than "Field required").
The first message is what callers see; see first_error_message().
"""

from __future__ import annotations

from typing import Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from auth.models import ROLES

_MIN_USERNAME = 3
_MIN_PASSWORD = 6


def _check_email(value: str) -> str:
    value = value.strip()
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("Invalid email address") from exc
    return value


def _check_role(value: str) -> str:
    if value not in ROLES:
        raise ValueError("Role must be 'user' or 'admin'")
    return value


class SignupRequest(BaseModel):
    """Body for signup. Any role the client sends is ignored -- signup always creates a "user"."""

    model_config = ConfigDict(validate_default=True)

    username: str = ""
    email: str = ""
    password: str = ""
    role: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_length(cls, v: str) -> str:
        if len(v) < _MIN_USERNAME:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < _MIN_PASSWORD:
            raise ValueError("Password must be at least 6 characters")
        return v


class LoginRequest(BaseModel):
    model_config = ConfigDict(validate_default=True)

    username: str = ""
    password: str = ""

    @field_validator("username")
    @classmethod
    def username_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Username is required")
        return v

    @field_validator("password")
    @classmethod
    def password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class EmailRequest(BaseModel):
    """Body for password-reset and verification-email requests."""

    model_config = ConfigDict(validate_default=True)

    email: str = ""

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _check_email(v)


class UpdateUserRequest(BaseModel):
    """Partial self-update. role is accepted here and stripped by accounts.update_self()."""

    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < _MIN_USERNAME:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v) if v is not None else v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) < _MIN_PASSWORD:
            raise ValueError("Password must be at least 6 characters")
        return v

    @field_validator("role")
    @classmethod
    def role_known(cls, v: Optional[str]) -> Optional[str]:
        return _check_role(v) if v is not None else v


class UpdateRoleRequest(BaseModel):
    model_config = ConfigDict(validate_default=True)

    role: str = ""

    @field_validator("role")
    @classmethod
    def role_known(cls, v: str) -> str:
        return _check_role(v)


def first_error_message(errors: list[dict]) -> str:
    """Return the message of the first validation error, without pydantic's prefix."""
    if not errors:
        return "Invalid request"
    msg = str(errors[0].get("msg", "Invalid request"))
    return msg.removeprefix("Value error, ")


def validation_message(exc: ValidationError) -> str:
    return first_error_message(exc.errors())
