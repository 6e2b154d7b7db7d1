"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth guard chain.

Two guards, applied per route in this order:
  1. get_current_user() -- session guard. Requires "Authorization: Bearer
     <token>" and resolves the token at the BaaS. 401 otherwise.
  2. require_admin()    -- admin guard. Runs the session guard, then re-fetches
     the user with the master key so a revoked admin loses access immediately.
     403 for non-admins.

Once both pass, request.state.user holds the resolved User and
request.state.session_token the raw token. Handlers never re-validate.

try_get_current_user() is the soft variant used by the HTML layer: it also
accepts the session cookie and returns None instead of raising.

Layer rule: no imports from api/, web/, or client/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.accounts import InvalidSession, fetch_user, resolve_session
from auth.models import User
from core.backend import BackendError, ParseClient

SESSION_COOKIE = "session_token"


def get_backend(request: Request) -> ParseClient:
    return request.app.state.backend


def bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the caller from the Bearer header or the web UI session cookie.

    Never raises -- any failure reads as "not signed in".
    """
    cached = getattr(request.state, "user", None)
    if cached is not None:
        return cached
    token = bearer_token(request) or request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        user = resolve_session(get_backend(request), token)
    except InvalidSession:
        return None
    request.state.session_token = token
    request.state.user = user
    return user


def get_current_user(request: Request) -> User:
    """Session guard. Raises HTTP 401 unless a Bearer token resolves to a user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user = resolve_session(get_backend(request), token)
    except InvalidSession as exc:
        raise HTTPException(status_code=401, detail=exc.message) from exc
    request.state.session_token = token
    request.state.user = user
    return user


def require_admin(request: Request, user: User = Depends(get_current_user)) -> User:
    """Admin guard. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin.

    The role is re-read from the BaaS rather than trusted from the session
    lookup, so role changes take effect on the very next request.
    """
    try:
        live = fetch_user(get_backend(request), user.object_id)
    except BackendError as exc:
        raise HTTPException(status_code=401, detail=exc.message) from exc
    if not live.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required")
    request.state.user = live
    return live
