"""
Daily update worker.

Fetches fresh counts for every tracked user, appends a snapshot when the
counts changed (or the latest snapshot is stale or missing), then rebuilds
today's day buckets. Provider calls are spaced out by UPDATE_DELAY_SECONDS.
"""
from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timedelta
from typing import Dict, Optional

from solvetrack.core.clock import resolve_now
from solvetrack.core.config import settings
from solvetrack.core.locks import user_lock
from solvetrack.core.logging import configure_logging, log_event
from solvetrack.features.stats.delta import DeltaEngine
from solvetrack.features.stats.provider import get_provider
from solvetrack.features.stats.store import StatsStores, get_stores
from solvetrack.models.stats import SolveCounts, UserProfile

logger = logging.getLogger("solvetrack.workers.daily_update")


def update_user(
    user: UserProfile,
    *,
    stores: StatsStores,
    provider,
    now: datetime,
    stale_after: timedelta,
) -> bool:
    """Fetch and maybe append a snapshot for one user. Returns True if appended."""
    counts: SolveCounts = provider.fetch(user.username)

    with user_lock(user.user_id):
        latest = stores.snapshots.latest_n(user.user_id, 1)
        if latest:
            previous = latest[0]
            changed = previous.counts != counts
            stale = now - previous.taken_at > stale_after
            if not changed and not stale:
                return False
        stores.snapshots.append(user.user_id, counts, now)
    return True


def run_daily_update(
    *,
    stores: Optional[StatsStores] = None,
    provider=None,
    now: Optional[datetime] = None,
    delay_seconds: Optional[float] = None,
) -> Dict:
    stores = stores or get_stores()
    provider = provider or get_provider()
    now_dt = resolve_now(now)
    delay = settings.UPDATE_DELAY_SECONDS if delay_seconds is None else delay_seconds
    stale_after = timedelta(hours=settings.STALE_SNAPSHOT_HOURS)

    users = stores.users.all()
    results = {"total_users": len(users), "success_count": 0, "error_count": 0, "appended": 0}

    for index, user in enumerate(users):
        try:
            if update_user(user, stores=stores, provider=provider, now=now_dt, stale_after=stale_after):
                results["appended"] += 1
            results["success_count"] += 1
        except Exception as exc:
            results["error_count"] += 1
            log_event(
                "warning",
                "daily_update.user_failed",
                user_id=user.user_id,
                username=user.username,
                event_type="daily_update",
                error_code=exc.__class__.__name__,
                extra={"error": exc},
                logger_name=logger.name,
            )
        if delay and index < len(users) - 1:
            time.sleep(delay)

    results["progress"] = DeltaEngine(stores).recompute_all(now=now_dt)

    logger.info(
        "[daily_update] complete",
        extra={
            "event_type": "daily_update",
            "total_users": results["total_users"],
            "success_count": results["success_count"],
            "error_count": results["error_count"],
        },
    )
    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch fresh stats for every user and rebuild today's buckets.")
    parser.add_argument("--delay", dest="delay", type=float, default=None, help="Seconds to wait between users.")
    args = parser.parse_args()

    configure_logging(settings.ENV)
    result = run_daily_update(delay_seconds=args.delay)
    print(result)
    return 0 if result["error_count"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
