import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from the project root before settings are read
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(project_dir, ".env"))

from solvetrack.core.config import settings, validate_config
from solvetrack.core.logging import configure_logging
from solvetrack.core.middleware.request_id import RequestIdMiddleware
from solvetrack.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from solvetrack.api import account, cron, health, leaderboard, refresh, stats

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("solvetrack")
    logger.info("Starting SolveTrack backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logger.info("Stopping SolveTrack backend...")


app = FastAPI(title="SolveTrack", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stats.router, prefix="/api", tags=["stats"])
app.include_router(refresh.router, prefix="/api", tags=["refresh"])
app.include_router(leaderboard.router, prefix="/api", tags=["leaderboard"])
app.include_router(account.router, prefix="/api", tags=["account"])
app.include_router(cron.router, prefix="/api", tags=["cron"])
app.include_router(health.root_router, tags=["health"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("solvetrack.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
