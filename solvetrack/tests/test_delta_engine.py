"""
solvetrack/tests/test_delta_engine.py

Day buckets (clamped) and rolling 24h deltas (unclamped).
"""

import threading

import pytest
from datetime import timedelta

from solvetrack.core.errors import StorageError
from solvetrack.core.locks import user_lock
from solvetrack.features.stats.delta import DeltaEngine
from solvetrack.features.stats.leaderboard import LeaderboardRanker
from solvetrack.features.stats.store import InMemorySnapshotStore
from solvetrack.tests.mocks import add_user, counts


@pytest.fixture
def engine(memory_stores):
    return DeltaEngine(memory_stores)


@pytest.fixture
def alice(memory_stores, fixed_now):
    return add_user(memory_stores, "alice", now=fixed_now, is_public=True)


class TestRecomputeToday:
    """recompute_today from the two latest snapshots."""

    def test_no_snapshots_is_noop(self, engine, alice, memory_stores, fixed_now):
        assert engine.recompute_today(alice.user_id, now=fixed_now) is None
        assert memory_stores.buckets.count() == 0

    def test_single_snapshot_counts_in_full(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(40, 20, 5), fixed_now)

        bucket = engine.recompute_today(alice.user_id, now=fixed_now)

        assert bucket.day == "2025-12-21"
        assert (bucket.easy, bucket.medium, bucket.hard) == (40, 20, 5)

    def test_two_snapshots_yield_difference(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 5, 1), fixed_now - timedelta(hours=2))
        memory_stores.snapshots.append(alice.user_id, counts(13, 7, 1), fixed_now)

        bucket = engine.recompute_today(alice.user_id, now=fixed_now)

        assert (bucket.easy, bucket.medium, bucket.hard) == (3, 2, 0)
        assert bucket.total == 5

    def test_regression_is_clamped_to_zero(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 5, 1), fixed_now - timedelta(hours=1))
        memory_stores.snapshots.append(alice.user_id, counts(7, 6, 1), fixed_now)

        bucket = engine.recompute_today(alice.user_id, now=fixed_now)

        assert bucket.easy == 0
        assert bucket.medium == 1

    def test_only_two_latest_snapshots_matter(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(1, 0, 0), fixed_now - timedelta(hours=5))
        memory_stores.snapshots.append(alice.user_id, counts(8, 0, 0), fixed_now - timedelta(hours=1))
        memory_stores.snapshots.append(alice.user_id, counts(9, 0, 0), fixed_now)

        bucket = engine.recompute_today(alice.user_id, now=fixed_now)

        assert bucket.easy == 1

    def test_repeat_is_idempotent(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 5, 1), fixed_now - timedelta(hours=1))
        memory_stores.snapshots.append(alice.user_id, counts(12, 5, 2), fixed_now)

        first = engine.recompute_today(alice.user_id, now=fixed_now)
        second = engine.recompute_today(alice.user_id, now=fixed_now + timedelta(minutes=10))

        assert first == second
        assert memory_stores.buckets.count() == 1

    def test_bucket_is_overwritten_not_summed(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 0, 0), fixed_now - timedelta(hours=2))
        memory_stores.snapshots.append(alice.user_id, counts(12, 0, 0), fixed_now - timedelta(hours=1))
        engine.recompute_today(alice.user_id, now=fixed_now)

        memory_stores.snapshots.append(alice.user_id, counts(13, 0, 0), fixed_now)
        bucket = engine.recompute_today(alice.user_id, now=fixed_now)

        assert bucket.easy == 1

    def test_bucket_day_follows_reference_timezone(self, engine, alice, memory_stores, fixed_now):
        # 07:30 UTC on Dec 22 is 23:30 PST on Dec 21
        late_evening = fixed_now.replace(day=22, hour=7)
        memory_stores.snapshots.append(alice.user_id, counts(1, 1, 1), late_evening)

        bucket = engine.recompute_today(alice.user_id, now=late_evening)

        assert bucket.day == "2025-12-21"

    def test_recompute_then_rank_attributes_increment(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 5, 1), fixed_now - timedelta(hours=3))
        memory_stores.snapshots.append(alice.user_id, counts(12, 6, 3), fixed_now)
        engine.recompute_today(alice.user_id, now=fixed_now)

        entries = LeaderboardRanker(memory_stores).rank("2025-12-21")

        assert len(entries) == 1
        assert (entries[0].easy, entries[0].medium, entries[0].hard) == (2, 1, 2)


class FlakySnapshotStore(InMemorySnapshotStore):
    def __init__(self, failing_user_id):
        super().__init__()
        self.failing_user_id = failing_user_id

    def latest_n(self, user_id, n=None):
        if user_id == self.failing_user_id:
            raise StorageError("Storage failure: OperationalError")
        return super().latest_n(user_id, n)


class TestRecomputeAll:
    def test_counts_computed_skipped_failed(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        bob = add_user(memory_stores, "bob", now=fixed_now)
        carol = add_user(memory_stores, "carol", now=fixed_now)

        memory_stores.snapshots = FlakySnapshotStore(failing_user_id=bob.user_id)
        memory_stores.snapshots.append(alice.user_id, counts(3, 0, 0), fixed_now)

        results = DeltaEngine(memory_stores).recompute_all(now=fixed_now)

        assert results == {"total_users": 3, "computed": 1, "skipped": 1, "failed": 1}
        assert memory_stores.buckets.get(alice.user_id, "2025-12-21").easy == 3
        assert memory_stores.buckets.get(carol.user_id, "2025-12-21") is None

    def test_failure_does_not_stop_later_users(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        bob = add_user(memory_stores, "bob", now=fixed_now)

        memory_stores.snapshots = FlakySnapshotStore(failing_user_id=alice.user_id)
        memory_stores.snapshots.append(bob.user_id, counts(0, 2, 0), fixed_now)

        results = DeltaEngine(memory_stores).recompute_all(now=fixed_now)

        assert results["failed"] == 1
        assert memory_stores.buckets.get(bob.user_id, "2025-12-21").medium == 2


class TestRecomputeConcurrency:
    """recompute_today racing snapshot appends for the same user."""

    def test_recompute_racing_appends_never_tears(self, engine, alice, memory_stores, fixed_now):
        start = fixed_now - timedelta(hours=1)
        memory_stores.snapshots.append(alice.user_id, counts(0, 0, 0), start)
        memory_stores.snapshots.append(alice.user_id, counts(1, 0, 0), start + timedelta(seconds=1))
        appends = 200
        observed = []
        done = threading.Event()

        def append_snapshots():
            for i in range(2, appends + 2):
                with user_lock(alice.user_id):
                    memory_stores.snapshots.append(alice.user_id, counts(i, 0, 0), start + timedelta(seconds=i))
            done.set()

        def recompute():
            while True:
                observed.append(engine.recompute_today(alice.user_id, now=fixed_now))
                if done.is_set():
                    break

        threads = [threading.Thread(target=append_snapshots)] + [threading.Thread(target=recompute) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        # Every recompute saw two adjacent snapshots, so each increment is exactly 1.
        assert observed
        assert all(bucket.counts == counts(1, 0, 0) for bucket in observed)
        assert memory_stores.buckets.count() == 1

        final = engine.recompute_today(alice.user_id, now=fixed_now)
        assert final == engine.recompute_today(alice.user_id, now=fixed_now)
        assert final.counts == counts(1, 0, 0)

    def test_concurrent_recomputes_leave_one_bucket(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(3, 1, 0), fixed_now - timedelta(hours=1))
        memory_stores.snapshots.append(alice.user_id, counts(5, 1, 2), fixed_now)
        barrier = threading.Barrier(6)

        def recompute():
            barrier.wait()
            engine.recompute_today(alice.user_id, now=fixed_now)

        threads = [threading.Thread(target=recompute) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        bucket = memory_stores.buckets.get(alice.user_id, "2025-12-21")
        assert memory_stores.buckets.count() == 1
        assert (bucket.easy, bucket.medium, bucket.hard) == (2, 0, 2)


class TestRolling24hDelta:
    def test_no_data(self, engine, alice, fixed_now):
        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.has_data is False
        assert rolling.baseline is None
        assert rolling.delta.total == 0

    def test_baseline_is_most_recent_snapshot_older_than_24h(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(5, 0, 0), fixed_now - timedelta(hours=30))
        memory_stores.snapshots.append(alice.user_id, counts(7, 0, 0), fixed_now - timedelta(hours=25))
        memory_stores.snapshots.append(alice.user_id, counts(10, 2, 0), fixed_now - timedelta(hours=1))
        memory_stores.snapshots.append(alice.user_id, counts(12, 2, 1), fixed_now)

        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.baseline.easy == 7
        assert (rolling.delta.easy, rolling.delta.medium, rolling.delta.hard) == (5, 2, 1)
        assert rolling.delta.total == 8

    def test_snapshot_exactly_24h_old_qualifies(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(4, 0, 0), fixed_now - timedelta(hours=24))
        memory_stores.snapshots.append(alice.user_id, counts(6, 0, 0), fixed_now)

        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.delta.easy == 2

    def test_falls_back_to_oldest_snapshot(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(2, 0, 0), fixed_now - timedelta(hours=6))
        memory_stores.snapshots.append(alice.user_id, counts(4, 0, 0), fixed_now - timedelta(hours=3))
        memory_stores.snapshots.append(alice.user_id, counts(5, 0, 0), fixed_now)

        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.baseline.easy == 2
        assert rolling.delta.easy == 3

    def test_regression_is_not_clamped(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(10, 0, 0), fixed_now - timedelta(hours=2))
        memory_stores.snapshots.append(alice.user_id, counts(7, 0, 0), fixed_now)

        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.delta.easy == -3
        assert rolling.delta.total == -3

    def test_single_snapshot_has_zero_delta(self, engine, alice, memory_stores, fixed_now):
        memory_stores.snapshots.append(alice.user_id, counts(3, 3, 3), fixed_now)

        rolling = engine.rolling_24h_delta(alice.user_id, now=fixed_now)

        assert rolling.has_data is True
        assert rolling.delta.total == 0
