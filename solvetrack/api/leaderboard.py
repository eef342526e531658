from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from solvetrack.api.deps import get_now, get_stores
from solvetrack.core.clock import parse_day_key
from solvetrack.core.errors import ValidationError
from solvetrack.features.stats.leaderboard import build_leaderboard

router = APIRouter()


@router.get("/leaderboard")
def get_leaderboard(
    day: Optional[str] = Query(None, description="YYYY-MM-DD; defaults to yesterday (America/Los_Angeles)"),
    stores=Depends(get_stores),
    now: datetime = Depends(get_now),
):
    """Daily leaderboard; private users appear without a username."""
    if day is not None:
        try:
            parse_day_key(day)
        except ValueError:
            raise ValidationError("day must be formatted as YYYY-MM-DD")

    return build_leaderboard(day, now=now, stores=stores).to_public_dict()
