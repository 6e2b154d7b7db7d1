"""
api/routes/users.py -- Admin-only user management endpoints.

Routes:
  GET    /api/users              -- list every user, newest first
  GET    /api/users/stats        -- total / admin / verified counts
  DELETE /api/users/{user_id}    -- delete another user's account
  PUT    /api/users/{user_id}/role -- set another user's role

Every route depends on require_admin, which runs the session guard first and
then re-reads the caller's role from the BaaS.

Self-protection: an admin targeting their own id gets 403 and nothing is
changed, so an admin cannot lock themselves out.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from api.models import SuccessResponse, UserResponse, UsersListResponse, UserStatsResponse
from auth import accounts
from auth.activity import schedule_activity
from auth.dependencies import get_backend, require_admin
from auth.models import ActivityType, User
from auth.schemas import UpdateRoleRequest
from core.backend import ParseClient

router = APIRouter()


@router.get("/users", response_model=UsersListResponse)
def list_users(
    current_user: User = Depends(require_admin),
    backend: ParseClient = Depends(get_backend),
) -> UsersListResponse:
    users = accounts.list_users(backend)
    return UsersListResponse(results=[UserResponse.from_user(u) for u in users], count=len(users))


@router.get("/users/stats", response_model=UserStatsResponse)
def user_stats(
    current_user: User = Depends(require_admin),
    backend: ParseClient = Depends(get_backend),
) -> UserStatsResponse:
    """Counts for the admin dashboard widgets."""
    return UserStatsResponse(**accounts.user_stats(accounts.list_users(backend)))


@router.delete("/users/{user_id}", response_model=SuccessResponse)
def delete_user(
    request: Request,
    user_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    backend: ParseClient = Depends(get_backend),
) -> SuccessResponse:
    """Delete a user. 403 when user_id is the caller's own id."""
    accounts.delete_user(backend, current_user, user_id)
    schedule_activity(background_tasks, request, current_user, ActivityType.user_delete, target=user_id)
    return SuccessResponse()


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_role(
    request: Request,
    user_id: str,
    body: UpdateRoleRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    backend: ParseClient = Depends(get_backend),
) -> UserResponse:
    """Set a user's role. 403 when user_id is the caller's own id."""
    updated = accounts.change_role(backend, current_user, user_id, body.role)
    schedule_activity(
        background_tasks,
        request,
        current_user,
        ActivityType.role_change,
        target=user_id,
        role=body.role,
    )
    return UserResponse.from_user(updated)
