import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Scheduled update trigger
    CRON_SECRET: Optional[str] = None

    # Stats provider (LeetCode GraphQL)
    LEETCODE_GRAPHQL_URL: str = "https://leetcode.com/graphql"
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_USER_AGENT: str = "SolveTrack/1.0"

    # Daily update batch
    UPDATE_DELAY_SECONDS: float = 0.1
    STALE_SNAPSHOT_HOURS: int = 23

    # Refresh gate / account policy
    REFRESH_BAN_MINUTES: int = 5
    ACCOUNT_EDIT_WINDOW_MINUTES: int = 5

    # App
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("solvetrack")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "CRON_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
