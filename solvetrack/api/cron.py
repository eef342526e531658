"""
Scheduled update trigger.

When CRON_SECRET is configured the caller must send
`Authorization: Bearer <CRON_SECRET>`.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header

from solvetrack.api.deps import get_now, get_provider, get_stores
from solvetrack.core.config import settings
from solvetrack.core.errors import AppError
from solvetrack.workers.daily_update import run_daily_update

router = APIRouter()


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    secret = settings.CRON_SECRET
    if secret and authorization != f"Bearer {secret}":
        raise AppError("Unauthorized", code="unauthorized", status_code=401)


@router.api_route("/cron/update", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
def trigger_daily_update(
    stores=Depends(get_stores),
    provider=Depends(get_provider),
    now: datetime = Depends(get_now),
):
    results = run_daily_update(stores=stores, provider=provider, now=now)
    return {"message": "Daily update complete", "results": results}
