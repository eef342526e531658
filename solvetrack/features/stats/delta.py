"""
Delta engine: day buckets and rolling 24h deltas from the snapshot series.

Day buckets clamp regressions to zero; the rolling delta does not, so a
source correction shows up in the live display instead of being hidden.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from solvetrack.core.clock import resolve_now, today
from solvetrack.core.locks import user_lock
from solvetrack.core.logging import log_event
from solvetrack.features.stats.store import StatsStores, get_stores
from solvetrack.models.stats import DayBucket, RollingDelta, StatsDelta

logger = logging.getLogger("solvetrack.delta")

ROLLING_WINDOW = timedelta(hours=24)


class DeltaEngine:
    def __init__(self, stores: Optional[StatsStores] = None):
        self.stores = stores or get_stores()

    def recompute_today(self, user_id: int, *, now: Optional[datetime] = None) -> Optional[DayBucket]:
        """
        Recompute today's bucket for one user from the two latest snapshots.

        - no snapshots: no-op, returns None
        - one snapshot: its full counts are today's increment
        - two or more: max(0, latest - previous) per difficulty

        The bucket is overwritten, so re-running with the same two latest
        snapshots yields the same contents.
        """
        now_dt = resolve_now(now)
        day = today(now_dt)

        with user_lock(user_id):
            latest_two = self.stores.snapshots.latest_n(user_id, 2)
            if not latest_two:
                return None

            current = latest_two[0].counts
            if len(latest_two) > 1:
                increment = current.clamped_increment_since(latest_two[1].counts)
            else:
                increment = current

            return self.stores.buckets.upsert(user_id, day, increment, now_dt)

    def recompute_all(self, *, now: Optional[datetime] = None) -> Dict[str, int]:
        """Recompute today's bucket for every user; one failure never stops the batch."""
        now_dt = resolve_now(now)
        results = {"total_users": 0, "computed": 0, "skipped": 0, "failed": 0}

        for user in self.stores.users.all():
            results["total_users"] += 1
            try:
                bucket = self.recompute_today(user.user_id, now=now_dt)
            except Exception as exc:
                results["failed"] += 1
                log_event(
                    "error",
                    "delta.recompute_failed",
                    user_id=user.user_id,
                    username=user.username,
                    event_type="daily_progress",
                    error_code=exc.__class__.__name__,
                    extra={"error": exc},
                    logger_name=logger.name,
                )
                continue
            if bucket is None:
                results["skipped"] += 1
            else:
                results["computed"] += 1

        logger.info("delta.recompute_all complete", extra={"event_type": "daily_progress", **results})
        return results

    def rolling_24h_delta(self, user_id: int, *, now: Optional[datetime] = None) -> RollingDelta:
        """
        Live delta: latest snapshot vs. the most recent one at least 24h old.

        Falls back to the oldest snapshot when none is that old. Not clamped.
        """
        now_dt = resolve_now(now)
        snapshots = self.stores.snapshots.latest_n(user_id)
        if not snapshots:
            return RollingDelta()

        latest = snapshots[0]
        cutoff = now_dt - ROLLING_WINDOW
        baseline = next((snap for snap in snapshots if snap.taken_at <= cutoff), snapshots[-1])

        return RollingDelta(
            latest=latest,
            baseline=baseline,
            delta=StatsDelta.between(latest, baseline),
        )
