"""
Manual refresh API.

200 when the counts changed; 429 when nothing changed (a short ban starts)
or when a ban is already active.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from solvetrack.api.deps import get_now, get_provider, get_stores
from solvetrack.core.config import settings
from solvetrack.features.stats.refresh import RefreshGate, get_client_ip

router = APIRouter()


@router.post("/refresh/{username}")
def refresh_user_stats(
    username: str,
    request: Request,
    stores=Depends(get_stores),
    provider=Depends(get_provider),
    now: datetime = Depends(get_now),
):
    ip = get_client_ip(request.headers, request.client.host if request.client else None)
    outcome = RefreshGate(stores, provider).check_and_apply(ip, username, now=now)

    stats = outcome.counts.model_dump()
    stats["total"] = outcome.counts.total

    if outcome.status == "unchanged":
        return JSONResponse(
            status_code=429,
            content={
                "status": "unchanged",
                "message": f"No changes detected. Refresh is disabled for {settings.REFRESH_BAN_MINUTES} minutes.",
                "ban_expires_at": outcome.ban_expires_at.isoformat(),
                "stats": stats,
            },
        )

    return {"status": "updated", "message": "Stats updated", "stats": stats}
