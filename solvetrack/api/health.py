"""Liveness and readiness probes."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from solvetrack.api.deps import get_stores

logger = logging.getLogger("solvetrack")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(stores=Depends(get_stores)):
    """Readiness check: the active store backend answers a trivial query."""
    try:
        stores.bans.count()
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "storage unreachable"})
    return {"status": "ok", "backend": stores.backend}
