"""
solvetrack/features/stats/refresh.py

Refresh gate: decides whether a manual refresh may hit the provider, and
bans (ip, username) for a few minutes after a refresh that changed nothing.

Flow for check_and_apply:
1. unknown user -> NotFoundError
2. active ban -> RefreshBannedError (no provider call); no snapshot yet -> NotFoundError
3. provider fetch (failure -> UpstreamUnavailableError)
4. counts changed -> append snapshot, "updated"
5. counts identical -> create ban now + REFRESH_BAN_MINUTES, "unchanged"
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from solvetrack.core.clock import resolve_now
from solvetrack.core.config import settings
from solvetrack.core.errors import NotFoundError, RefreshBannedError
from solvetrack.core.locks import refresh_lock, user_lock
from solvetrack.core.logging import log_event
from solvetrack.features.stats.store import StatsStores, get_stores
from solvetrack.models.stats import RefreshOutcome

logger = logging.getLogger("solvetrack.refresh")


def get_client_ip(headers, peer_host: Optional[str] = None) -> str:
    """First x-forwarded-for entry, else the socket peer, else 'unknown'."""
    forwarded = headers.get("x-forwarded-for") if headers is not None else None
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"


class RefreshGate:
    def __init__(self, stores: Optional[StatsStores] = None, provider=None, *, ban_minutes: Optional[int] = None):
        if provider is None:
            from solvetrack.features.stats.provider import get_provider

            provider = get_provider()
        self.stores = stores or get_stores()
        self.provider = provider
        minutes = ban_minutes if ban_minutes is not None else settings.REFRESH_BAN_MINUTES
        self.ban_duration = timedelta(minutes=minutes)

    def check(self, ip: str, username: str, *, now: Optional[datetime] = None) -> None:
        """Raise RefreshBannedError if (ip, username) has a ban expiring after now."""
        now_dt = resolve_now(now)
        ban = self.stores.bans.active_ban(ip, username, now_dt)
        if ban is not None:
            raise RefreshBannedError(ban.expires_at, now=now_dt)

    def check_and_apply(self, ip: str, username: str, *, now: Optional[datetime] = None) -> RefreshOutcome:
        now_dt = resolve_now(now)

        # Unknown usernames never reach the lock registry.
        user = self.stores.users.by_username(username)
        if user is None:
            raise NotFoundError("User not found")

        with refresh_lock(ip, username):
            self.check(ip, username, now=now_dt)

            latest = self.stores.snapshots.latest_n(user.user_id, 1)
            if not latest:
                raise NotFoundError("No stats found for user")

            fresh = self.provider.fetch(username)

            with user_lock(user.user_id):
                # Re-read under the user lock; the batch may have appended meanwhile.
                current = self.stores.snapshots.latest_n(user.user_id, 1)
                baseline = current[0].counts if current else latest[0].counts

                if fresh != baseline:
                    self.stores.snapshots.append(user.user_id, fresh, now_dt)
                    log_event(
                        "info",
                        "refresh.updated",
                        user_id=user.user_id,
                        username=username,
                        event_type="refresh",
                        extra={"total": fresh.total},
                        logger_name=logger.name,
                    )
                    return RefreshOutcome(status="updated", username=username, counts=fresh)

            ban = self.stores.bans.create(ip, username, now_dt + self.ban_duration)
            log_event(
                "info",
                "refresh.unchanged",
                user_id=user.user_id,
                username=username,
                event_type="refresh",
                extra={"ban_expires_at": ban.expires_at.isoformat()},
                logger_name=logger.name,
            )
            return RefreshOutcome(
                status="unchanged",
                username=username,
                counts=fresh,
                ban_expires_at=ban.expires_at,
            )
