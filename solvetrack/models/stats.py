"""
solvetrack/models/stats.py
Stats models: snapshots, day buckets, bans, deltas and leaderboard entries.
"""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union


class SolveCounts(BaseModel):
    """Cumulative (or incremental) solved-problem counts by difficulty."""

    model_config = ConfigDict(frozen=True)

    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard

    def clamped_increment_since(self, previous: "SolveCounts") -> "SolveCounts":
        """Per-difficulty increment over `previous`; regressions become 0."""
        return SolveCounts(
            easy=max(0, self.easy - previous.easy),
            medium=max(0, self.medium - previous.medium),
            hard=max(0, self.hard - previous.hard),
        )


class Snapshot(BaseModel):
    """Immutable point-in-time record of a user's lifetime counts."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    taken_at: datetime
    easy: int = Field(ge=0)
    medium: int = Field(ge=0)
    hard: int = Field(ge=0)

    @property
    def counts(self) -> SolveCounts:
        return SolveCounts(easy=self.easy, medium=self.medium, hard=self.hard)

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard


class DayBucket(BaseModel):
    """Incremental counts attributed to one user for one reference-tz day."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    day: str = Field(description="YYYY-MM-DD in America/Los_Angeles")
    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)
    created_at: datetime

    @property
    def counts(self) -> SolveCounts:
        return SolveCounts(easy=self.easy, medium=self.medium, hard=self.hard)

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard


class RefreshBan(BaseModel):
    model_config = ConfigDict(frozen=True)

    ip: str
    username: str
    expires_at: datetime


class UserProfile(BaseModel):
    """Tracked account as seen by the engine."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    display_name: str
    is_public: bool = False
    first_submission_at: Optional[datetime] = None
    created_at: datetime

    @property
    def public_username(self) -> Optional[str]:
        return self.username if self.is_public else None


class StatsDelta(BaseModel):
    """Signed per-difficulty difference; negative values surface corrections."""

    model_config = ConfigDict(frozen=True)

    easy: int = 0
    medium: int = 0
    hard: int = 0
    total: int = 0

    @classmethod
    def between(cls, latest: Snapshot, baseline: Snapshot) -> "StatsDelta":
        easy = latest.easy - baseline.easy
        medium = latest.medium - baseline.medium
        hard = latest.hard - baseline.hard
        return cls(easy=easy, medium=medium, hard=hard, total=easy + medium + hard)


class RollingDelta(BaseModel):
    """Rolling 24h delta; latest is None when the user has no snapshots."""

    model_config = ConfigDict(frozen=True)

    latest: Optional[Snapshot] = None
    baseline: Optional[Snapshot] = None
    delta: StatsDelta = Field(default_factory=StatsDelta)

    @property
    def has_data(self) -> bool:
        return self.latest is not None


class RefreshOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["updated", "unchanged"]
    username: str
    counts: SolveCounts
    ban_expires_at: Optional[datetime] = None


class LeaderboardEntry(BaseModel):
    """Single ranked entry. `username` is only set for public users."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1, description="Dense sequential position (1..n)")
    display_name: str
    username: Optional[str] = Field(default=None, description="Present only when the user is public")
    easy: int = Field(ge=0)
    medium: int = Field(ge=0)
    hard: int = Field(ge=0)
    total: int = Field(ge=1)
    score: int = Field(ge=0)

    def to_public_dict(self) -> Dict[str, Union[int, str]]:
        # exclude_unset drops username entirely for private users
        return self.model_dump(mode="json", exclude_unset=True)


class LeaderboardResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: str
    display_date: str
    entries: List[LeaderboardEntry]
    computed_at: datetime
    score_system: Dict[str, Union[int, str]]

    def to_public_dict(self) -> dict:
        return {
            "day": self.day,
            "display_date": self.display_date,
            "leaderboard": [entry.to_public_dict() for entry in self.entries],
            "computed_at": self.computed_at.isoformat(),
            "score_system": dict(self.score_system),
        }
