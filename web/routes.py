"""
web/routes.py -- Jinja2 template routes for the SecureAuth web UI.

Server-rendered pages over the same account rules the JSON API uses
(auth/accounts.py). The BaaS session token lives in an httpOnly cookie; an
unresolvable cookie is deleted and the visitor treated as signed out, never
shown an error.

Role-gated pages (/admin/...) check the live role on every request. Hiding a
link in the sidebar is only a convenience; the check here is what counts.

Routes:
  GET  /                               -- landing page (signed-in users go to /dashboard)
  GET  /login                          -- login form
  POST /login                          -- handle password login
  GET  /signup                         -- signup form
  POST /signup                         -- create account, then /verify-email
  GET  /forgot-password                -- password reset form
  POST /forgot-password                -- send reset email
  GET  /verify-email                   -- "check your inbox" page
  POST /verify-email                   -- resend verification email
  GET  /dashboard                      -- account overview (+ stats for admins)
  GET  /profile                        -- profile page
  POST /profile                        -- update username / email / password
  POST /profile/picture                -- upload avatar
  POST /profile/picture/delete         -- remove avatar
  POST /profile/delete                 -- delete own account
  GET  /admin/users                    -- user management (admin)
  POST /admin/users/{user_id}/role     -- change role (admin)
  POST /admin/users/{user_id}/delete   -- delete user (admin)
  POST /logout                         -- revoke session, clear cookie
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from auth import accounts
from auth.activity import schedule_activity
from auth.dependencies import SESSION_COOKIE, try_get_current_user
from auth.models import ActivityType, User
from auth.schemas import EmailRequest, LoginRequest, SignupRequest, UpdateUserRequest, validation_message
from core.backend import BackendError, ParseClient
from core.config import get_settings

logger = logging.getLogger("secureauth.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------

# Whitelist mapping for ?notice= query params. The raw query param is NEVER
# passed to templates -- only the message from this dict is. Prevents
# reflected XSS via crafted query strings.
_NOTICES: dict[str, str] = {
    "welcome": "Welcome back!",
    "signed_up": "Account created! Please verify your email address.",
    "logged_out": "You have been successfully logged out.",
    "reset_sent": "Check your inbox for password reset instructions.",
    "verification_sent": "Verification email sent.",
    "profile_updated": "Your profile has been updated successfully.",
    "picture_updated": "Your profile picture has been updated successfully.",
    "picture_removed": "Your profile picture has been removed successfully.",
    "account_deleted": "Your account has been permanently deleted.",
    "user_deleted": "User has been deleted successfully.",
    "role_updated": "User role has been updated.",
    "session_expired": "Your session has expired. Please log in again.",
}


# Whitelist for ?error= on /admin/users, same reasoning as _NOTICES.
_ADMIN_ERRORS: dict[str, str] = {
    "self_delete": "Cannot delete your own account",
    "self_role": "Cannot change your own role",
    "bad_role": "Role must be 'user' or 'admin'",
    "upstream": "The authentication service rejected the request.",
}


def _notice(request: Request) -> Optional[str]:
    return _NOTICES.get(request.query_params.get("notice", ""))


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def _backend(request: Request) -> ParseClient:
    return request.app.state.backend


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative ("//host") targets so a
    crafted /login?next=... link cannot bounce users off-site.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/dashboard"


def _set_session_cookie(response: RedirectResponse, token: str) -> None:
    """httpOnly so page scripts never see the token; samesite=lax blocks cross-site POSTs."""
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_cookie_max_age,
    )
    response.headers["Cache-Control"] = "no-store"


def _require_user(request: Request) -> tuple[Optional[User], Optional[RedirectResponse]]:
    """Resolve the signed-in user or build the redirect to /login.

    A cookie that no longer resolves (expired or revoked at the BaaS) is
    deleted on the way out so it stops being retried.
    """
    user = try_get_current_user(request)
    if user is not None:
        return user, None
    if request.cookies.get(SESSION_COOKIE):
        redirect = RedirectResponse(f"/login?next={request.url.path}&notice=session_expired", status_code=302)
        redirect.delete_cookie(SESSION_COOKIE)
        return None, redirect
    return None, RedirectResponse(f"/login?next={request.url.path}", status_code=302)


def _require_admin(request: Request) -> tuple[Optional[User], Optional[RedirectResponse]]:
    user, redirect = _require_user(request)
    if redirect is not None:
        return None, redirect
    try:
        live = accounts.fetch_user(_backend(request), user.object_id)
    except BackendError:
        return None, RedirectResponse("/dashboard", status_code=302)
    if not live.is_admin:
        return None, RedirectResponse("/dashboard", status_code=302)
    return live, None


def _render(request: Request, name: str, status_code: int = 200, **context) -> HTMLResponse:
    context.setdefault("user", getattr(request.state, "user", None))
    context.setdefault("notice", _notice(request))
    return templates.TemplateResponse(request, name, context, status_code=status_code)


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def landing(request: Request) -> HTMLResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)
    return _render(request, "landing.html")


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)
    return _render(request, "login.html", next=request.query_params.get("next", ""))


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    background_tasks: BackgroundTasks,
    username: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("", alias="next"),
) -> HTMLResponse:
    """Handle the login form. Failures re-render the form with the same generic message the API uses."""
    try:
        body = LoginRequest(username=username, password=password)
        user, token = accounts.log_in(_backend(request), body.username, body.password)
    except ValidationError as exc:
        return _render(request, "login.html", 400, error=validation_message(exc), username=username, next=next_url)
    except accounts.InvalidCredentials as exc:
        return _render(request, "login.html", 401, error=exc.message, username=username, next=next_url)

    schedule_activity(background_tasks, request, user, ActivityType.login)
    resp = RedirectResponse(_safe_next(next_url), status_code=302)
    _set_session_cookie(resp, token)
    return resp


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)
    return _render(request, "signup.html")


@router.post("/signup", response_class=HTMLResponse)
def signup_post(
    request: Request,
    background_tasks: BackgroundTasks,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
) -> HTMLResponse:
    form = {"username": username, "email": email}
    try:
        body = SignupRequest(username=username, email=email, password=password)
        user, token = accounts.sign_up(_backend(request), body.username, body.email, body.password)
    except ValidationError as exc:
        return _render(request, "signup.html", 400, error=validation_message(exc), form=form)
    except BackendError as exc:
        return _render(request, "signup.html", 400, error=exc.message, form=form)

    schedule_activity(background_tasks, request, user, ActivityType.signup)
    resp = RedirectResponse("/verify-email?notice=signed_up", status_code=302)
    _set_session_cookie(resp, token)
    return resp


@router.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_form(request: Request) -> HTMLResponse:
    return _render(request, "forgot_password.html")


@router.post("/forgot-password", response_class=HTMLResponse)
def forgot_password_post(request: Request, email: str = Form("")) -> HTMLResponse:
    try:
        body = EmailRequest(email=email)
        accounts.request_password_reset(_backend(request), body.email)
    except ValidationError as exc:
        return _render(request, "forgot_password.html", 400, error=validation_message(exc), email=email)
    except BackendError as exc:
        return _render(request, "forgot_password.html", 400, error=exc.message, email=email)
    return _render(request, "forgot_password.html", sent=True, email=email, notice=_NOTICES["reset_sent"])


@router.get("/verify-email", response_class=HTMLResponse)
def verify_email(request: Request) -> HTMLResponse:
    user = try_get_current_user(request)
    return _render(request, "verify_email.html", verified=bool(user and user.email_verified))


@router.post("/verify-email", response_class=HTMLResponse)
def resend_verification(request: Request, background_tasks: BackgroundTasks) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    try:
        accounts.request_verification_email(_backend(request), user.email)
    except BackendError as exc:
        return _render(request, "verify_email.html", 400, error=exc.message, verified=user.email_verified)
    schedule_activity(background_tasks, request, user, ActivityType.verification_email_request)
    return RedirectResponse("/verify-email?notice=verification_sent", status_code=302)


# ---------------------------------------------------------------------------
# Signed-in pages
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    stats = None
    if user.is_admin:
        try:
            stats = accounts.user_stats(accounts.list_users(_backend(request)))
        except BackendError as exc:
            logger.warning("Could not load user stats: %s", exc.message)
    return _render(request, "dashboard.html", stats=stats)


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    return _render(request, "profile.html")


@router.post("/profile", response_class=HTMLResponse)
def profile_update(
    request: Request,
    background_tasks: BackgroundTasks,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
) -> HTMLResponse:
    """Blank form fields mean "leave unchanged"."""
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    submitted = {"username": username, "email": email, "password": password}
    changes = {k: v for k, v in submitted.items() if v}
    try:
        body = UpdateUserRequest(**changes)
        updated = accounts.update_self(_backend(request), user, body.model_dump(exclude_none=True))
    except ValidationError as exc:
        return _render(request, "profile.html", 400, error=validation_message(exc))
    except BackendError as exc:
        return _render(request, "profile.html", 400, error=exc.message)
    schedule_activity(background_tasks, request, updated, ActivityType.profile_update, fields=sorted(changes))
    return RedirectResponse("/profile?notice=profile_updated", status_code=302)


@router.post("/profile/picture", response_class=HTMLResponse)
def profile_picture_upload(
    request: Request,
    background_tasks: BackgroundTasks,
    profilePicture: Optional[UploadFile] = File(None),  # noqa: N803 -- form field name
) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    if profilePicture is None or not profilePicture.filename:
        return _render(request, "profile.html", 400, error="No file uploaded")
    max_bytes = get_settings().max_upload_bytes
    try:
        accounts.validate_profile_picture(profilePicture.content_type, 0, max_bytes)
        content = profilePicture.file.read(max_bytes + 1)
        updated = accounts.set_profile_picture(
            _backend(request),
            user,
            profilePicture.filename,
            content,
            profilePicture.content_type or "",
            max_bytes,
        )
    except accounts.InvalidUpload as exc:
        return _render(request, "profile.html", 400, error=exc.message)
    except BackendError as exc:
        return _render(request, "profile.html", 400, error=exc.message)
    schedule_activity(background_tasks, request, updated, ActivityType.profile_picture_upload)
    return RedirectResponse("/profile?notice=picture_updated", status_code=302)


@router.post("/profile/picture/delete", response_class=HTMLResponse)
def profile_picture_delete(request: Request, background_tasks: BackgroundTasks) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    try:
        updated = accounts.remove_profile_picture(_backend(request), user)
    except BackendError as exc:
        return _render(request, "profile.html", 400, error=exc.message)
    schedule_activity(background_tasks, request, updated, ActivityType.profile_picture_delete)
    return RedirectResponse("/profile?notice=picture_removed", status_code=302)


@router.post("/profile/delete", response_class=HTMLResponse)
def profile_delete(request: Request, background_tasks: BackgroundTasks) -> HTMLResponse:
    user, redirect = _require_user(request)
    if redirect is not None:
        return redirect
    try:
        accounts.delete_self(_backend(request), user)
    except BackendError as exc:
        return _render(request, "profile.html", 400, error=exc.message)
    schedule_activity(background_tasks, request, user, ActivityType.account_delete)
    resp = RedirectResponse("/?notice=account_deleted", status_code=302)
    resp.delete_cookie(SESSION_COOKIE)
    return resp


# ---------------------------------------------------------------------------
# Admin pages
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_class=HTMLResponse)
def user_management(request: Request) -> HTMLResponse:
    admin, redirect = _require_admin(request)
    if redirect is not None:
        return redirect
    error = _ADMIN_ERRORS.get(request.query_params.get("error", ""))
    try:
        users = accounts.list_users(_backend(request))
    except BackendError as exc:
        logger.warning("Could not load users: %s", exc.message)
        users = []
        error = _ADMIN_ERRORS["upstream"]
    return _render(
        request,
        "user_management.html",
        user=admin,
        users=users,
        stats=accounts.user_stats(users),
        error=error,
    )


@router.post("/admin/users/{user_id}/role", response_class=HTMLResponse)
def user_role_post(
    request: Request,
    user_id: str,
    background_tasks: BackgroundTasks,
    role: str = Form(""),
) -> RedirectResponse:
    admin, redirect = _require_admin(request)
    if redirect is not None:
        return redirect
    try:
        accounts.change_role(_backend(request), admin, user_id, role)
    except accounts.ForbiddenAction:
        return RedirectResponse("/admin/users?error=self_role", status_code=302)
    except accounts.AccountError:
        return RedirectResponse("/admin/users?error=bad_role", status_code=302)
    except BackendError as exc:
        logger.warning("Role change for %s failed: %s", user_id, exc.message)
        return RedirectResponse("/admin/users?error=upstream", status_code=302)
    schedule_activity(background_tasks, request, admin, ActivityType.role_change, target=user_id, role=role)
    return RedirectResponse("/admin/users?notice=role_updated", status_code=302)


@router.post("/admin/users/{user_id}/delete", response_class=HTMLResponse)
def user_delete_post(request: Request, user_id: str, background_tasks: BackgroundTasks) -> RedirectResponse:
    admin, redirect = _require_admin(request)
    if redirect is not None:
        return redirect
    try:
        accounts.delete_user(_backend(request), admin, user_id)
    except accounts.ForbiddenAction:
        return RedirectResponse("/admin/users?error=self_delete", status_code=302)
    except BackendError as exc:
        logger.warning("Delete of %s failed: %s", user_id, exc.message)
        return RedirectResponse("/admin/users?error=upstream", status_code=302)
    schedule_activity(background_tasks, request, admin, ActivityType.user_delete, target=user_id)
    return RedirectResponse("/admin/users?notice=user_deleted", status_code=302)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request, background_tasks: BackgroundTasks) -> RedirectResponse:
    """Revoke the session at the BaaS (best effort) and clear the cookie."""
    user = try_get_current_user(request)
    token = request.cookies.get(SESSION_COOKIE)
    if user is not None and token:
        try:
            accounts.log_out(_backend(request), token)
        except BackendError as exc:
            logger.info("Logout at BaaS failed: %s", exc.message)
        schedule_activity(background_tasks, request, user, ActivityType.logout)
    resp = RedirectResponse("/?notice=logged_out", status_code=302)
    resp.delete_cookie(SESSION_COOKIE)
    return resp
