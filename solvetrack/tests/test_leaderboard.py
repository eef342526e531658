"""
solvetrack/tests/test_leaderboard.py

Ranking: score desc, total desc, user id asc; dense ranks; visibility.
"""

import pytest
from datetime import datetime, timedelta, timezone

from solvetrack.features.stats.leaderboard import (
    LeaderboardRanker,
    build_leaderboard,
    calculate_score,
    rank_entries,
)
from solvetrack.models.stats import DayBucket, UserProfile
from solvetrack.tests.mocks import add_user, counts

DAY = "2025-12-20"


def _row(user_id, easy=0, medium=0, hard=0, *, is_public=False, created_at=None):
    created = created_at or datetime(2025, 12, 1, tzinfo=timezone.utc)
    bucket = DayBucket(user_id=user_id, day=DAY, easy=easy, medium=medium, hard=hard, created_at=created)
    user = UserProfile(
        user_id=user_id,
        username=f"user{user_id}",
        display_name=f"User {user_id}",
        is_public=is_public,
        created_at=created,
    )
    return bucket, user


class TestScore:
    def test_weights(self):
        assert calculate_score(1, 0, 0) == 2
        assert calculate_score(0, 1, 0) == 3
        assert calculate_score(0, 0, 1) == 4
        assert calculate_score(3, 2, 1) == 16


class TestRankEntries:
    """Pure ranking over (bucket, user) rows."""

    def test_total_breaks_score_ties(self):
        rows = [
            _row(1, hard=5),            # A: score 20, total 5
            _row(2, easy=4, medium=4),  # B: score 20, total 8
            _row(3, medium=5),          # C: score 15
        ]

        entries = rank_entries(rows)

        assert [(e.display_name, e.rank) for e in entries] == [("User 2", 1), ("User 1", 2), ("User 3", 3)]
        assert [e.score for e in entries] == [20, 20, 15]

    def test_ranks_are_dense_positions(self):
        rows = [_row(1, easy=5), _row(2, easy=10), _row(3, easy=10), _row(4, easy=2, hard=0)]

        entries = rank_entries(rows)

        assert [e.score for e in entries] == [20, 20, 10, 4]
        assert [e.rank for e in entries] == [1, 2, 3, 4]

    def test_full_tie_falls_back_to_user_id(self):
        rows = [_row(7, easy=1, medium=1), _row(3, easy=1, medium=1)]

        entries = rank_entries(rows)

        assert [e.display_name for e in entries] == ["User 3", "User 7"]

    def test_zero_total_is_excluded(self):
        entries = rank_entries([_row(1), _row(2, easy=1)])

        assert len(entries) == 1
        assert entries[0].display_name == "User 2"

    def test_private_users_carry_no_username(self):
        entries = rank_entries([_row(1, easy=2, is_public=True), _row(2, easy=1, is_public=False)])

        public, private = (entry.to_public_dict() for entry in entries)

        assert public["username"] == "user1"
        assert "username" not in private

    def test_empty(self):
        assert rank_entries([]) == []


class TestLeaderboardRanker:
    def test_reads_buckets_for_day_only(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        memory_stores.buckets.upsert(alice.user_id, DAY, counts(1, 0, 0), fixed_now)
        memory_stores.buckets.upsert(alice.user_id, "2025-12-19", counts(9, 9, 9), fixed_now)

        entries = LeaderboardRanker(memory_stores).rank(DAY)

        assert len(entries) == 1
        assert entries[0].total == 1

    def test_skips_buckets_of_deleted_users(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        memory_stores.buckets.upsert(alice.user_id, DAY, counts(1, 0, 0), fixed_now)
        memory_stores.buckets.upsert(99, DAY, counts(5, 0, 0), fixed_now)

        entries = LeaderboardRanker(memory_stores).rank(DAY)

        assert [e.display_name for e in entries] == ["Alice"]

    def test_insertion_order_does_not_affect_ties(self, memory_stores, fixed_now):
        first = add_user(memory_stores, "first", now=fixed_now)
        second = add_user(memory_stores, "second", now=fixed_now)
        memory_stores.buckets.upsert(second.user_id, DAY, counts(2, 0, 0), fixed_now)
        memory_stores.buckets.upsert(first.user_id, DAY, counts(2, 0, 0), fixed_now)

        entries = LeaderboardRanker(memory_stores).rank(DAY)

        assert [e.display_name for e in entries] == ["First", "Second"]


class TestBuildLeaderboard:
    def test_defaults_to_yesterday(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now, is_public=True)
        memory_stores.buckets.upsert(alice.user_id, DAY, counts(1, 1, 1), fixed_now)

        response = build_leaderboard(now=fixed_now)

        assert response.day == DAY
        assert response.display_date == "Saturday, December 20, 2025"
        assert response.computed_at == fixed_now
        assert response.entries[0].score == 9

    def test_public_dict_shape(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        memory_stores.buckets.upsert(alice.user_id, DAY, counts(0, 2, 0), fixed_now)

        payload = build_leaderboard(DAY, now=fixed_now).to_public_dict()

        assert set(payload) == {"day", "display_date", "leaderboard", "computed_at", "score_system"}
        assert payload["score_system"]["hard"] == 4
        assert payload["leaderboard"][0] == {
            "rank": 1,
            "display_name": "Alice",
            "easy": 0,
            "medium": 2,
            "hard": 0,
            "total": 2,
            "score": 6,
        }

    def test_same_inputs_same_output(self, memory_stores, fixed_now):
        alice = add_user(memory_stores, "alice", now=fixed_now)
        memory_stores.buckets.upsert(alice.user_id, DAY, counts(4, 0, 0), fixed_now)

        first = build_leaderboard(DAY, now=fixed_now)
        second = build_leaderboard(DAY, now=fixed_now + timedelta(hours=1))

        assert first.entries == second.entries
        assert first.computed_at != second.computed_at
