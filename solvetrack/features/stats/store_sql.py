"""
solvetrack/features/stats/store_sql.py

SQLAlchemy-backed stores (PostgreSQL in production, SQLite for local runs).

Maintains the same interface as the in-memory stores in store.py:
- snapshots are append-only, ordered by (taken_at, id)
- daily_progress has UNIQUE(user_id, date); upsert overwrites
- refresh_bans has UNIQUE(ip, username); create replaces the expiry
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from solvetrack.core.clock import ensure_utc
from solvetrack.core.database import (
    daily_progress,
    get_db_session,
    refresh_bans,
    stats_snapshots,
    users as app_users,
)
from solvetrack.core.errors import ConflictError, NotFoundError, StorageError
from solvetrack.features.stats.store import StatsStores
from solvetrack.models.stats import DayBucket, RefreshBan, Snapshot, SolveCounts, UserProfile

# One retry covers the insert race on a unique key (another writer won).
UPSERT_ATTEMPTS = 2


@contextmanager
def _session() -> Iterator:
    """DB session whose driver errors surface as StorageError."""
    try:
        with get_db_session() as session:
            yield session
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        raise StorageError(f"Storage failure: {exc.__class__.__name__}") from exc


def _user_from_row(row) -> UserProfile:
    return UserProfile(
        user_id=row.id,
        username=row.username,
        display_name=row.display_name,
        is_public=bool(row.is_public),
        first_submission_at=ensure_utc(row.first_submission_at) if row.first_submission_at else None,
        created_at=ensure_utc(row.created_at),
    )


def _snapshot_from_row(row) -> Snapshot:
    return Snapshot(
        user_id=row.user_id,
        taken_at=ensure_utc(row.taken_at),
        easy=row.easy,
        medium=row.medium,
        hard=row.hard,
    )


def _bucket_from_row(row) -> DayBucket:
    return DayBucket(
        user_id=row.user_id,
        day=row.date,
        easy=row.easy,
        medium=row.medium,
        hard=row.hard,
        created_at=ensure_utc(row.created_at),
    )


class SqlUserDirectory:
    def all(self) -> List[UserProfile]:
        with _session() as session:
            rows = session.execute(select(app_users).order_by(app_users.c.id)).fetchall()
            return [_user_from_row(row) for row in rows]

    def by_username(self, username: str) -> Optional[UserProfile]:
        with _session() as session:
            row = session.execute(
                select(app_users).where(app_users.c.username == username)
            ).first()
            return _user_from_row(row) if row else None

    def by_id(self, user_id: int) -> Optional[UserProfile]:
        with _session() as session:
            row = session.execute(select(app_users).where(app_users.c.id == user_id)).first()
            return _user_from_row(row) if row else None

    def create(
        self,
        *,
        username: str,
        display_name: str,
        is_public: bool,
        first_submission_at: Optional[datetime],
        now: datetime,
    ) -> UserProfile:
        try:
            with _session() as session:
                result = session.execute(
                    insert(app_users).values(
                        username=username,
                        display_name=display_name,
                        is_public=is_public,
                        first_submission_at=ensure_utc(first_submission_at) if first_submission_at else None,
                        created_at=ensure_utc(now),
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise ConflictError("Username already exists") from exc
        return self.by_id(user_id)

    def update(
        self,
        user_id: int,
        *,
        display_name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> UserProfile:
        values = {}
        if display_name is not None:
            values["display_name"] = display_name
        if is_public is not None:
            values["is_public"] = is_public
        if values:
            with _session() as session:
                session.execute(update(app_users).where(app_users.c.id == user_id).values(**values))
        user = self.by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user


class SqlSnapshotStore:
    def append(self, user_id: int, counts: SolveCounts, taken_at: datetime) -> Snapshot:
        taken = ensure_utc(taken_at)
        with _session() as session:
            session.execute(
                insert(stats_snapshots).values(
                    user_id=user_id,
                    taken_at=taken,
                    easy=counts.easy,
                    medium=counts.medium,
                    hard=counts.hard,
                )
            )
        return Snapshot(user_id=user_id, taken_at=taken, easy=counts.easy, medium=counts.medium, hard=counts.hard)

    def latest_n(self, user_id: int, n: Optional[int] = None) -> List[Snapshot]:
        query = (
            select(stats_snapshots)
            .where(stats_snapshots.c.user_id == user_id)
            .order_by(stats_snapshots.c.taken_at.desc(), stats_snapshots.c.id.desc())
        )
        if n is not None:
            query = query.limit(n)
        with _session() as session:
            return [_snapshot_from_row(row) for row in session.execute(query).fetchall()]

    def count(self, user_id: Optional[int] = None) -> int:
        query = select(func.count()).select_from(stats_snapshots)
        if user_id is not None:
            query = query.where(stats_snapshots.c.user_id == user_id)
        with _session() as session:
            return session.execute(query).scalar() or 0


class SqlDayBucketStore:
    def get(self, user_id: int, day: str) -> Optional[DayBucket]:
        with _session() as session:
            row = session.execute(
                select(daily_progress).where(
                    and_(daily_progress.c.user_id == user_id, daily_progress.c.date == day)
                )
            ).first()
            return _bucket_from_row(row) if row else None

    def upsert(self, user_id: int, day: str, counts: SolveCounts, now: datetime) -> DayBucket:
        """Overwrite (never add to) the bucket for (user_id, day); last write wins."""
        values = {"easy": counts.easy, "medium": counts.medium, "hard": counts.hard}
        key = and_(daily_progress.c.user_id == user_id, daily_progress.c.date == day)
        for attempt in range(UPSERT_ATTEMPTS):
            try:
                with _session() as session:
                    result = session.execute(update(daily_progress).where(key).values(**values))
                    if not result.rowcount:
                        session.execute(
                            insert(daily_progress).values(
                                user_id=user_id, date=day, created_at=ensure_utc(now), **values
                            )
                        )
                break
            except IntegrityError:
                # A concurrent writer inserted the row first; retry as update.
                if attempt == UPSERT_ATTEMPTS - 1:
                    raise StorageError("Could not upsert day bucket")
        return self.get(user_id, day)

    def for_day(self, day: str) -> List[DayBucket]:
        with _session() as session:
            rows = session.execute(
                select(daily_progress)
                .where(daily_progress.c.date == day)
                .order_by(daily_progress.c.user_id)
            ).fetchall()
            return [_bucket_from_row(row) for row in rows]

    def count(self) -> int:
        with _session() as session:
            return session.execute(select(func.count()).select_from(daily_progress)).scalar() or 0


class SqlBanLedger:
    def active_ban(self, ip: str, username: str, now: datetime) -> Optional[RefreshBan]:
        with _session() as session:
            row = session.execute(
                select(refresh_bans)
                .where(
                    and_(
                        refresh_bans.c.ip == ip,
                        refresh_bans.c.username == username,
                        refresh_bans.c.expires_at > ensure_utc(now),
                    )
                )
                .order_by(refresh_bans.c.expires_at.desc())
                .limit(1)
            ).first()
            if not row:
                return None
            return RefreshBan(ip=row.ip, username=row.username, expires_at=ensure_utc(row.expires_at))

    def create(self, ip: str, username: str, expires_at: datetime) -> RefreshBan:
        expires = ensure_utc(expires_at)
        key = and_(refresh_bans.c.ip == ip, refresh_bans.c.username == username)
        for attempt in range(UPSERT_ATTEMPTS):
            try:
                with _session() as session:
                    result = session.execute(update(refresh_bans).where(key).values(expires_at=expires))
                    if not result.rowcount:
                        session.execute(insert(refresh_bans).values(ip=ip, username=username, expires_at=expires))
                break
            except IntegrityError:
                if attempt == UPSERT_ATTEMPTS - 1:
                    raise StorageError("Could not record refresh ban")
        return RefreshBan(ip=ip, username=username, expires_at=expires)

    def prune_expired(self, now: datetime, *, dry_run: bool = False) -> int:
        cutoff = ensure_utc(now)
        with _session() as session:
            candidates = session.execute(
                select(func.count()).select_from(refresh_bans).where(refresh_bans.c.expires_at <= cutoff)
            ).scalar() or 0
            if dry_run or not candidates:
                return candidates
            result = session.execute(delete(refresh_bans).where(refresh_bans.c.expires_at <= cutoff))
            return result.rowcount or 0

    def count(self) -> int:
        with _session() as session:
            return session.execute(select(func.count()).select_from(refresh_bans)).scalar() or 0


class SqlStores(StatsStores):
    backend = "sql"

    def __init__(self):
        super().__init__(
            users=SqlUserDirectory(),
            snapshots=SqlSnapshotStore(),
            buckets=SqlDayBucketStore(),
            bans=SqlBanLedger(),
        )

    def delete_user(self, user_id: int) -> bool:
        """Delete an account with its snapshots and day buckets in one transaction."""
        with _session() as session:
            session.execute(delete(stats_snapshots).where(stats_snapshots.c.user_id == user_id))
            session.execute(delete(daily_progress).where(daily_progress.c.user_id == user_id))
            result = session.execute(delete(app_users).where(app_users.c.id == user_id))
            return bool(result.rowcount)
