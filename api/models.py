"""
API response models for SecureAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names are camelCase because they are the wire contract the browser and
CLI clients already consume (objectId, emailVerified, sessionToken, ...).

Request bodies are validated by auth/schemas.py, which the HTML layer shares.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import User

# ---------------------------------------------------------------------------
# User contract
# ---------------------------------------------------------------------------


class ProfilePictureOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class UserResponse(BaseModel):
    """The stable User contract returned by every user-shaped endpoint."""

    model_config = ConfigDict(frozen=True)

    objectId: str
    username: str
    email: str
    role: str
    emailVerified: bool
    profilePicture: Optional[ProfilePictureOut] = None
    createdAt: str
    updatedAt: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from a domain User.

        The mapping lives here, colocated with the output model, rather than
        scattered across route handlers.
        """
        picture = None
        if user.profile_picture is not None:
            picture = ProfilePictureOut(name=user.profile_picture.name, url=user.profile_picture.url)
        return cls(
            objectId=user.object_id,
            username=user.username,
            email=user.email,
            role=user.role,
            emailVerified=user.email_verified,
            profilePicture=picture,
            createdAt=user.created_at,
            updatedAt=user.updated_at,
        )


class AuthResponse(BaseModel):
    """Response for signup and login: the user plus the BaaS session token."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    sessionToken: str


class UsersListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: list[UserResponse]
    count: int


class UserStatsResponse(BaseModel):
    """Counts for the admin dashboard."""

    model_config = ConfigDict(frozen=True)

    totalUsers: int
    adminUsers: int
    verifiedUsers: int


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
