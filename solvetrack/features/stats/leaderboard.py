"""
solvetrack/features/stats/leaderboard.py

Daily leaderboard over day buckets.

score = 2*easy + 3*medium + 4*hard
order = score desc, total desc, user_id asc
ranks are dense sequential positions (1..n), not competition ranks.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from solvetrack.core.clock import display_date, resolve_now, yesterday
from solvetrack.features.stats.store import StatsStores, get_stores
from solvetrack.models.stats import DayBucket, LeaderboardEntry, LeaderboardResponse, UserProfile

SCORE_WEIGHTS: Dict[str, int] = {"easy": 2, "medium": 3, "hard": 4}

SCORE_SYSTEM = {
    **SCORE_WEIGHTS,
    "formula": "score = easy*2 + medium*3 + hard*4",
}


def calculate_score(easy: int, medium: int, hard: int) -> int:
    return easy * SCORE_WEIGHTS["easy"] + medium * SCORE_WEIGHTS["medium"] + hard * SCORE_WEIGHTS["hard"]


def rank_entries(rows: Iterable[Tuple[DayBucket, UserProfile]]) -> List[LeaderboardEntry]:
    """
    Pure ranking over (bucket, user) pairs.

    Users with a zero day total are dropped. Usernames are only attached
    for public users; private entries never carry the key.
    """
    scored = []
    for bucket, user in rows:
        if bucket.total <= 0:
            continue
        score = calculate_score(bucket.easy, bucket.medium, bucket.hard)
        scored.append((score, bucket, user))

    scored.sort(key=lambda item: (-item[0], -item[1].total, item[2].user_id))

    entries: List[LeaderboardEntry] = []
    for rank, (score, bucket, user) in enumerate(scored, start=1):
        fields = {
            "rank": rank,
            "display_name": user.display_name,
            "easy": bucket.easy,
            "medium": bucket.medium,
            "hard": bucket.hard,
            "total": bucket.total,
            "score": score,
        }
        if user.is_public:
            fields["username"] = user.username
        entries.append(LeaderboardEntry(**fields))
    return entries


class LeaderboardRanker:
    def __init__(self, stores: Optional[StatsStores] = None):
        self.stores = stores or get_stores()

    def rank(self, day: str) -> List[LeaderboardEntry]:
        users = {user.user_id: user for user in self.stores.users.all()}
        rows = [
            (bucket, users[bucket.user_id])
            for bucket in self.stores.buckets.for_day(day)
            if bucket.user_id in users
        ]
        return rank_entries(rows)


def build_leaderboard(
    day: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    stores: Optional[StatsStores] = None,
) -> LeaderboardResponse:
    """Leaderboard for `day`, defaulting to yesterday in the reference timezone."""
    now_dt = resolve_now(now)
    target_day = day or yesterday(now_dt)
    entries = LeaderboardRanker(stores).rank(target_day)
    return LeaderboardResponse(
        day=target_day,
        display_date=display_date(target_day),
        entries=entries,
        computed_at=now_dt,
        score_system=SCORE_SYSTEM,
    )
