"""Storage hygiene: sweep refresh bans that have already expired."""
from datetime import datetime
import argparse
import logging
from typing import Optional

from solvetrack.core.clock import resolve_now
from solvetrack.core.config import settings
from solvetrack.core.logging import configure_logging
from solvetrack.features.stats.store import StatsStores, get_stores

logger = logging.getLogger("solvetrack.workers.cleanup_bans")


def cleanup_refresh_bans(
    *,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    stores: Optional[StatsStores] = None,
) -> dict:
    stores = stores or get_stores()
    cutoff = resolve_now(now)

    candidates = stores.bans.prune_expired(cutoff, dry_run=True)
    deleted = 0
    if not dry_run and candidates:
        deleted = stores.bans.prune_expired(cutoff)

    logger.info(
        "[cleanup] expired refresh bans",
        extra={"dry_run": dry_run, "candidates": candidates, "deleted": deleted},
    )
    return {"cutoff": cutoff.isoformat(), "dry_run": dry_run, "candidates": candidates, "deleted": deleted}


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Delete refresh bans whose expiry has passed.")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Count expired bans without deleting them.")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    result = cleanup_refresh_bans(dry_run=args.dry_run)
    print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
