# solvetrack/conftest.py
import os
import pytest
from datetime import datetime, timezone


@pytest.fixture
def fixed_now():
    """Fixed timestamp for deterministic testing (07:30 PST on 2025-12-21)."""
    return datetime(2025, 12, 21, 15, 30, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def memory_stores(monkeypatch):
    """
    Every test starts from empty in-memory stores.

    DATABASE_URL is cleared so nothing reaches a real database unless a test
    asks for the sqlite_db fixture.
    """
    from solvetrack.core.config import settings
    from solvetrack.features.stats.provider import set_provider
    from solvetrack.features.stats.store import InMemoryStores, reset_stores, set_stores

    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    monkeypatch.setattr(settings, "UPDATE_DELAY_SECONDS", 0.0)

    stores = InMemoryStores()
    set_stores(stores)
    yield stores
    reset_stores()
    set_provider(None)


@pytest.fixture
def sqlite_db(tmp_path):
    """
    File-backed SQLite database with all tables created.

    Yields the URL; the global engine is disposed afterwards.
    """
    from solvetrack.core.database import create_all_tables, dispose_engine, drop_all_tables, init_engine

    url = f"sqlite:///{os.path.join(str(tmp_path), 'solvetrack.db')}"
    init_engine(url)
    create_all_tables()
    yield url
    drop_all_tables()
    dispose_engine()
