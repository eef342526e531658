"""
Stats API: lifetime counts plus the rolling 24h delta for one user.
"""
from datetime import datetime

from fastapi import APIRouter, Depends

from solvetrack.api.deps import get_now, get_stores
from solvetrack.core.errors import NotFoundError
from solvetrack.features.stats.delta import DeltaEngine

router = APIRouter()


@router.get("/stats/{username}")
def get_user_stats(username: str, stores=Depends(get_stores), now: datetime = Depends(get_now)):
    user = stores.users.by_username(username)
    if user is None:
        raise NotFoundError("User not found")

    rolling = DeltaEngine(stores).rolling_24h_delta(user.user_id, now=now)
    if not rolling.has_data:
        raise NotFoundError("No stats found for user")

    latest = rolling.latest
    user_payload = {"display_name": user.display_name}
    if user.is_public:
        user_payload["username"] = user.username

    return {
        "user": user_payload,
        "lifetime": {
            "easy": latest.easy,
            "medium": latest.medium,
            "hard": latest.hard,
            "total": latest.total,
        },
        "past24h": rolling.delta.model_dump(),
        "last_updated": latest.taken_at.isoformat(),
    }
