"""
solvetrack/features/stats/store.py

Stores consumed by the stats engine:
- user directory
- append-only snapshot store
- day-bucket store (one row per user per day, upsert)
- refresh ban ledger

In-memory implementations live here; SQL implementations are in store_sql.py
and expose the same interface.
"""

from __future__ import annotations

import logging
from datetime import datetime
from itertools import count
from threading import Lock
from typing import Dict, List, Optional, Tuple

from solvetrack.core.clock import ensure_utc
from solvetrack.core.errors import ConflictError, NotFoundError
from solvetrack.models.stats import DayBucket, RefreshBan, Snapshot, SolveCounts, UserProfile

logger = logging.getLogger("solvetrack")


class InMemoryUserDirectory:
    def __init__(self):
        self._users: Dict[int, UserProfile] = {}
        self._ids = count(1)
        self._lock = Lock()

    def all(self) -> List[UserProfile]:
        with self._lock:
            return [self._users[uid] for uid in sorted(self._users)]

    def by_username(self, username: str) -> Optional[UserProfile]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
        return None

    def by_id(self, user_id: int) -> Optional[UserProfile]:
        with self._lock:
            return self._users.get(user_id)

    def create(
        self,
        *,
        username: str,
        display_name: str,
        is_public: bool,
        first_submission_at: Optional[datetime],
        now: datetime,
    ) -> UserProfile:
        with self._lock:
            if any(u.username == username for u in self._users.values()):
                raise ConflictError("Username already exists")
            user = UserProfile(
                user_id=next(self._ids),
                username=username,
                display_name=display_name,
                is_public=is_public,
                first_submission_at=ensure_utc(first_submission_at) if first_submission_at else None,
                created_at=ensure_utc(now),
            )
            self._users[user.user_id] = user
            return user

    def update(
        self,
        user_id: int,
        *,
        display_name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> UserProfile:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError("User not found")
            changes = {}
            if display_name is not None:
                changes["display_name"] = display_name
            if is_public is not None:
                changes["is_public"] = is_public
            updated = user.model_copy(update=changes)
            self._users[user_id] = updated
            return updated

    def delete(self, user_id: int) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None


class InMemorySnapshotStore:
    """Append-only; rows are never mutated."""

    def __init__(self):
        self._rows: List[Tuple[int, Snapshot]] = []
        self._seq = count(1)
        self._lock = Lock()

    def append(self, user_id: int, counts: SolveCounts, taken_at: datetime) -> Snapshot:
        snapshot = Snapshot(
            user_id=user_id,
            taken_at=ensure_utc(taken_at),
            easy=counts.easy,
            medium=counts.medium,
            hard=counts.hard,
        )
        with self._lock:
            self._rows.append((next(self._seq), snapshot))
        return snapshot

    def latest_n(self, user_id: int, n: Optional[int] = None) -> List[Snapshot]:
        """Most recent first; equal instants fall back to insertion order."""
        with self._lock:
            rows = [(seq, snap) for seq, snap in self._rows if snap.user_id == user_id]
        rows.sort(key=lambda row: (row[1].taken_at, row[0]), reverse=True)
        snapshots = [snap for _, snap in rows]
        return snapshots if n is None else snapshots[:n]

    def delete_for_user(self, user_id: int) -> int:
        with self._lock:
            before = len(self._rows)
            self._rows = [row for row in self._rows if row[1].user_id != user_id]
            return before - len(self._rows)

    def count(self, user_id: Optional[int] = None) -> int:
        with self._lock:
            if user_id is None:
                return len(self._rows)
            return sum(1 for _, snap in self._rows if snap.user_id == user_id)


class InMemoryDayBucketStore:
    def __init__(self):
        self._buckets: Dict[Tuple[int, str], DayBucket] = {}
        self._lock = Lock()

    def get(self, user_id: int, day: str) -> Optional[DayBucket]:
        with self._lock:
            return self._buckets.get((user_id, day))

    def upsert(self, user_id: int, day: str, counts: SolveCounts, now: datetime) -> DayBucket:
        """Overwrite (never add to) the bucket for (user_id, day)."""
        with self._lock:
            existing = self._buckets.get((user_id, day))
            bucket = DayBucket(
                user_id=user_id,
                day=day,
                easy=counts.easy,
                medium=counts.medium,
                hard=counts.hard,
                created_at=existing.created_at if existing else ensure_utc(now),
            )
            self._buckets[(user_id, day)] = bucket
            return bucket

    def for_day(self, day: str) -> List[DayBucket]:
        with self._lock:
            buckets = [b for (_, d), b in self._buckets.items() if d == day]
        return sorted(buckets, key=lambda b: b.user_id)

    def delete_for_user(self, user_id: int) -> int:
        with self._lock:
            keys = [key for key in self._buckets if key[0] == user_id]
            for key in keys:
                del self._buckets[key]
            return len(keys)

    def count(self) -> int:
        with self._lock:
            return len(self._buckets)


class InMemoryBanLedger:
    """One ban per (ip, username); creating a ban replaces the expiry."""

    def __init__(self):
        self._bans: Dict[Tuple[str, str], datetime] = {}
        self._lock = Lock()

    def active_ban(self, ip: str, username: str, now: datetime) -> Optional[RefreshBan]:
        with self._lock:
            expires_at = self._bans.get((ip, username))
        if expires_at is None or expires_at <= ensure_utc(now):
            return None
        return RefreshBan(ip=ip, username=username, expires_at=expires_at)

    def create(self, ip: str, username: str, expires_at: datetime) -> RefreshBan:
        expires = ensure_utc(expires_at)
        with self._lock:
            self._bans[(ip, username)] = expires
        return RefreshBan(ip=ip, username=username, expires_at=expires)

    def prune_expired(self, now: datetime, *, dry_run: bool = False) -> int:
        cutoff = ensure_utc(now)
        with self._lock:
            expired = [key for key, expires in self._bans.items() if expires <= cutoff]
            if not dry_run:
                for key in expired:
                    del self._bans[key]
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._bans)


class StatsStores:
    """Bundle of the four stores the engine and workers operate on."""

    backend = "base"

    def __init__(self, *, users, snapshots, buckets, bans):
        self.users = users
        self.snapshots = snapshots
        self.buckets = buckets
        self.bans = bans

    def delete_user(self, user_id: int) -> bool:
        raise NotImplementedError


class InMemoryStores(StatsStores):
    backend = "memory"

    def __init__(self):
        super().__init__(
            users=InMemoryUserDirectory(),
            snapshots=InMemorySnapshotStore(),
            buckets=InMemoryDayBucketStore(),
            bans=InMemoryBanLedger(),
        )

    def delete_user(self, user_id: int) -> bool:
        self.snapshots.delete_for_user(user_id)
        self.buckets.delete_for_user(user_id)
        return self.users.delete(user_id)


def build_stores() -> StatsStores:
    """
    Pick the store implementation.

    - SQL stores when DATABASE_URL is configured and reachable
    - In-memory otherwise (development and tests)
    """
    from solvetrack.core.database import get_database_url

    if get_database_url():
        from solvetrack.core.database import check_connection, create_all_tables
        from solvetrack.features.stats.store_sql import SqlStores

        if check_connection():
            create_all_tables()
            return SqlStores()
        logger.warning("[stats.store] database unavailable, falling back to in-memory stores")

    return InMemoryStores()


_stores_instance: Optional[StatsStores] = None


def get_stores() -> StatsStores:
    """Singleton store bundle; the primary API consumers should use."""
    global _stores_instance
    if _stores_instance is None:
        _stores_instance = build_stores()
    return _stores_instance


def set_stores(stores: Optional[StatsStores]) -> None:
    """Install a specific bundle (tests, one-off scripts)."""
    global _stores_instance
    _stores_instance = stores


def reset_stores() -> None:
    """FOR TESTING ONLY - forces re-initialization on next get_stores() call."""
    set_stores(None)
