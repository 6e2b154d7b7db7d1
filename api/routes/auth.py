"""
api/routes/auth.py -- Authentication and self-service REST endpoints.

Routes:
  POST   /api/auth/signup            -- create account (role forced to "user"); 201
  POST   /api/auth/login             -- password login; returns session token
  POST   /api/auth/logout            -- revoke session (requires session)
  GET    /api/auth/me                -- current user (requires session)
  PUT    /api/auth/me                -- partial self-update, role stripped (requires session)
  DELETE /api/auth/me                -- delete own account (requires session)
  POST   /api/auth/reset-password    -- send password-reset email
  POST   /api/auth/verify-email      -- resend verification email
  POST   /api/auth/profile-picture   -- upload avatar, <=5MB jpeg/png/gif (requires session)
  DELETE /api/auth/profile-picture   -- remove avatar (requires session)

Security:
  Signup ignores any client-supplied role.
  Login failures all return the same 401 message so the response does not
      reveal whether the username or the password was wrong.
  POST /login and POST /signup are rate-limited per IP.
  Cache-Control: no-store on responses that carry a session token.
  Uploads are type- and size-checked before the BaaS file store is contacted.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Request, Response, UploadFile

from api.limiter import limiter
from api.models import AuthResponse, SuccessResponse, UserResponse
from auth import accounts
from auth.activity import schedule_activity
from auth.dependencies import get_backend, get_current_user
from auth.models import ActivityType, User
from auth.schemas import EmailRequest, LoginRequest, SignupRequest, UpdateUserRequest
from core.backend import ParseClient
from core.config import get_settings

# Auth policy:
# - POST   /api/auth/signup:           public
# - POST   /api/auth/login:            public
# - POST   /api/auth/reset-password:   public
# - POST   /api/auth/verify-email:     public
# - everything else:                   requires session (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


# Limits are resolved per request, so the slowapi wrapper must be the endpoint
# FastAPI registers. Annotations stay evaluated (no __future__ import) because
# FastAPI reads them through that wrapper.
@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
@limiter.limit(lambda: get_settings().signup_rate_limit)
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    background_tasks: BackgroundTasks,
    backend: ParseClient = Depends(get_backend),
) -> AuthResponse:
    """Create an account and sign it in.

    body.role is deliberately unused: every signup is a "user". Admins are
    made by another admin (PUT /api/users/{id}/role) or by `main.py promote`.
    """
    user, token = accounts.sign_up(backend, body.username, body.email, body.password)
    schedule_activity(background_tasks, request, user, ActivityType.signup)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(user=UserResponse.from_user(user), sessionToken=token)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(lambda: get_settings().login_rate_limit)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    backend: ParseClient = Depends(get_backend),
) -> AuthResponse:
    """Authenticate with username and password.

    accounts.log_in() raises InvalidCredentials (401, generic message) for
    every failure mode.
    """
    user, token = accounts.log_in(backend, body.username, body.password)
    schedule_activity(background_tasks, request, user, ActivityType.login)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(user=UserResponse.from_user(user), sessionToken=token)


@router.post("/auth/reset-password", response_model=SuccessResponse)
def reset_password(body: EmailRequest, backend: ParseClient = Depends(get_backend)) -> SuccessResponse:
    """Ask the BaaS to email a password-reset link."""
    accounts.request_password_reset(backend, body.email)
    return SuccessResponse()


@router.post("/auth/verify-email", response_model=SuccessResponse)
def resend_verification(body: EmailRequest, backend: ParseClient = Depends(get_backend)) -> SuccessResponse:
    """Ask the BaaS to resend the email-verification link."""
    accounts.request_verification_email(backend, body.email)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    backend: ParseClient = Depends(get_backend),
) -> SuccessResponse:
    """Revoke the caller's session token at the BaaS."""
    accounts.log_out(backend, request.state.session_token)
    schedule_activity(background_tasks, request, current_user, ActivityType.logout)
    return SuccessResponse()


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the user the session token resolves to."""
    return UserResponse.from_user(current_user)


@router.put("/auth/me", response_model=UserResponse)
def update_me(
    request: Request,
    body: UpdateUserRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    backend: ParseClient = Depends(get_backend),
) -> UserResponse:
    """Update username, email or password. A role in the body is dropped."""
    changes = body.model_dump(exclude_none=True)
    updated = accounts.update_self(backend, current_user, changes)
    fields = sorted(k for k in changes if k != "role")
    schedule_activity(background_tasks, request, updated, ActivityType.profile_update, fields=fields)
    return UserResponse.from_user(updated)


@router.delete("/auth/me", response_model=SuccessResponse)
def delete_me(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    backend: ParseClient = Depends(get_backend),
) -> SuccessResponse:
    accounts.delete_self(backend, current_user)
    schedule_activity(background_tasks, request, current_user, ActivityType.account_delete)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Profile picture
# ---------------------------------------------------------------------------


@router.post("/auth/profile-picture", response_model=UserResponse)
def upload_profile_picture(
    request: Request,
    background_tasks: BackgroundTasks,
    profilePicture: Optional[UploadFile] = File(None),  # noqa: N803 -- multipart field name
    current_user: User = Depends(get_current_user),
    backend: ParseClient = Depends(get_backend),
) -> UserResponse:
    """Store an avatar and attach it to the caller.

    Reads at most max_upload_bytes + 1 bytes: enough to detect an oversized
    file without buffering all of it.
    """
    if profilePicture is None or not profilePicture.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    max_bytes = get_settings().max_upload_bytes
    accounts.validate_profile_picture(profilePicture.content_type, 0, max_bytes)
    content = profilePicture.file.read(max_bytes + 1)
    updated = accounts.set_profile_picture(
        backend,
        current_user,
        profilePicture.filename,
        content,
        profilePicture.content_type or "",
        max_bytes,
    )
    schedule_activity(background_tasks, request, updated, ActivityType.profile_picture_upload)
    return UserResponse.from_user(updated)


@router.delete("/auth/profile-picture", response_model=UserResponse)
def delete_profile_picture(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    backend: ParseClient = Depends(get_backend),
) -> UserResponse:
    updated = accounts.remove_profile_picture(backend, current_user)
    schedule_activity(background_tasks, request, updated, ActivityType.profile_picture_delete)
    return UserResponse.from_user(updated)
