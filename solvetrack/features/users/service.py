"""
Account lifecycle: signup, update, delete.

Edits and deletion are only allowed within ACCOUNT_EDIT_WINDOW_MINUTES of
the signup instant (first_submission_at).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from solvetrack.core.clock import resolve_now
from solvetrack.core.config import settings
from solvetrack.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionError,
    UpstreamUnavailableError,
    ValidationError,
)
from solvetrack.core.locks import user_lock
from solvetrack.core.logging import log_event
from solvetrack.features.stats.store import StatsStores, get_stores
from solvetrack.models.stats import UserProfile

logger = logging.getLogger("solvetrack.users")

MAX_USERNAME_LENGTH = 50
MAX_DISPLAY_NAME_LENGTH = 100


def _edit_window() -> timedelta:
    return timedelta(minutes=settings.ACCOUNT_EDIT_WINDOW_MINUTES)


def is_within_edit_window(
    first_submission_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> bool:
    if first_submission_at is None:
        return False
    now_dt = resolve_now(now)
    return resolve_now(first_submission_at) > now_dt - (window or _edit_window())


def _clean(value: Optional[str], field: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def _require_editable(user: UserProfile, now: datetime) -> None:
    if not is_within_edit_window(user.first_submission_at, now=now):
        raise PermissionError(
            f"Account can only be modified within {settings.ACCOUNT_EDIT_WINDOW_MINUTES} minutes of signup",
            code="edit_window_expired",
        )


def signup(
    username: str,
    display_name: str,
    is_public: bool = False,
    *,
    now: Optional[datetime] = None,
    stores: Optional[StatsStores] = None,
    provider=None,
) -> UserProfile:
    """Create an account and record its first snapshot."""
    stores = stores or get_stores()
    if provider is None:
        from solvetrack.features.stats.provider import get_provider

        provider = get_provider()
    now_dt = resolve_now(now)

    username = _clean(username, "username", MAX_USERNAME_LENGTH)
    display_name = _clean(display_name, "display_name", MAX_DISPLAY_NAME_LENGTH)

    if stores.users.by_username(username) is not None:
        raise ConflictError("Username already exists")

    try:
        counts = provider.fetch(username)
    except UpstreamUnavailableError as exc:
        if exc.user_missing:
            raise ValidationError("LeetCode username not found") from exc
        raise

    user = stores.users.create(
        username=username,
        display_name=display_name,
        is_public=is_public,
        first_submission_at=now_dt,
        now=now_dt,
    )
    with user_lock(user.user_id):
        stores.snapshots.append(user.user_id, counts, now_dt)

    log_event(
        "info",
        "account.created",
        user_id=user.user_id,
        username=username,
        event_type="account",
        extra={"is_public": is_public, "total": counts.total},
        logger_name=logger.name,
    )
    return user


def update_account(
    username: str,
    display_name: Optional[str] = None,
    is_public: Optional[bool] = None,
    *,
    now: Optional[datetime] = None,
    stores: Optional[StatsStores] = None,
) -> UserProfile:
    stores = stores or get_stores()
    now_dt = resolve_now(now)

    user = stores.users.by_username(username)
    if user is None:
        raise NotFoundError("User not found")
    _require_editable(user, now_dt)

    if display_name is None and is_public is None:
        raise ValidationError("Nothing to update")
    if display_name is not None:
        display_name = _clean(display_name, "display_name", MAX_DISPLAY_NAME_LENGTH)

    updated = stores.users.update(user.user_id, display_name=display_name, is_public=is_public)
    log_event("info", "account.updated", user_id=user.user_id, username=username, event_type="account", logger_name=logger.name)
    return updated


def delete_account(
    username: str,
    *,
    now: Optional[datetime] = None,
    stores: Optional[StatsStores] = None,
) -> None:
    """Delete an account together with its snapshots and day buckets."""
    stores = stores or get_stores()
    now_dt = resolve_now(now)

    user = stores.users.by_username(username)
    if user is None:
        raise NotFoundError("User not found")
    _require_editable(user, now_dt)

    with user_lock(user.user_id):
        stores.delete_user(user.user_id)
    log_event("info", "account.deleted", user_id=user.user_id, username=username, event_type="account", logger_name=logger.name)
