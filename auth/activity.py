"""
auth/activity.py -- Best-effort audit trail stored in the BaaS ActivityLog class.

Entries are written after the response has been sent (FastAPI BackgroundTasks)
and any failure is logged and dropped. An audit write must never block or fail
the request that caused it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import BackgroundTasks, Request

from auth.models import ActivityLog, ActivityType, User
from core.backend import ParseClient
from core.config import get_settings

logger = logging.getLogger("secureauth.activity")

ACTIVITY_CLASS = "ActivityLog"


def build_entry(
    user: User,
    activity_type: ActivityType,
    request: Optional[Request] = None,
    **metadata: Any,
) -> ActivityLog:
    """Capture who did what, plus client address and user agent when a request is at hand."""
    ip_address = None
    user_agent = None
    if request is not None:
        ip_address = request.client.host if request.client else None
        user_agent = request.headers.get("User-Agent")
    return ActivityLog(
        user_id=user.object_id,
        username=user.username,
        activity_type=activity_type,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=metadata,
    )


def log_activity(backend: ParseClient, entry: ActivityLog) -> bool:
    """Persist an entry. Returns False instead of raising on any failure."""
    fields: dict[str, Any] = {
        "userId": entry.user_id,
        "username": entry.username,
        "activityType": entry.activity_type.value,
    }
    if entry.ip_address:
        fields["ipAddress"] = entry.ip_address
    if entry.user_agent:
        fields["userAgent"] = entry.user_agent
    if entry.metadata:
        fields["metadata"] = entry.metadata
    try:
        backend.create_object(ACTIVITY_CLASS, fields)
    except Exception:
        logger.exception("Failed to log activity %s for %s", entry.activity_type.value, entry.username)
        return False
    return True


def schedule_activity(
    background_tasks: BackgroundTasks,
    request: Request,
    user: User,
    activity_type: ActivityType,
    **metadata: Any,
) -> None:
    """Queue an entry to be written after the response is sent.

    No-op when ACTIVITY_LOG_ENABLED=false.
    """
    if not get_settings().activity_log_enabled:
        return
    entry = build_entry(user, activity_type, request, **metadata)
    background_tasks.add_task(log_activity, request.app.state.backend, entry)
