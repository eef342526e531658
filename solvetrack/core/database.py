"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for users, snapshots, day buckets and refresh bans
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Index, ForeignKey, UniqueConstraint, select
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import false, func
import logging
import os

from solvetrack.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None

logger = logging.getLogger("solvetrack")


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite: single file, connections shared across the request threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
    }


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    _engine = create_engine(
        url,
        echo=False,  # Set to True for SQL query logging
        **_engine_options(url),
    )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Drop the global engine (tests switch databases between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception as e:
        logger.warning("Database connection check failed: %s", e)
        return False


# Tracked accounts
users = Table(
    'app_users',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('username', String(50), nullable=False, unique=True),
    Column('display_name', String(100), nullable=False),
    Column('is_public', Boolean, nullable=False, server_default=false()),
    Column('first_submission_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Append-only cumulative solve-count snapshots
stats_snapshots = Table(
    'stats',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', Integer, ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False),
    Column('taken_at', DateTime(timezone=True), nullable=False),
    Column('easy', Integer, nullable=False),
    Column('medium', Integer, nullable=False),
    Column('hard', Integer, nullable=False),
    # latest_n(user) pattern: (user_id, taken_at DESC, id DESC)
    Index('idx_stats_user_taken', 'user_id', 'taken_at'),
)

# Per-day incremental counts; one row per (user, reference-tz day)
daily_progress = Table(
    'daily_progress',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', Integer, ForeignKey('app_users.id', ondelete='CASCADE'), nullable=False),
    Column('date', String(10), nullable=False),  # YYYY-MM-DD, America/Los_Angeles
    Column('easy', Integer, nullable=False, default=0, server_default='0'),
    Column('medium', Integer, nullable=False, default=0, server_default='0'),
    Column('hard', Integer, nullable=False, default=0, server_default='0'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'date', name='uq_daily_progress_user_date'),
    Index('idx_daily_progress_date', 'date'),
)

# Refresh bans; one row per (ip, username), expiry replaced on re-ban
refresh_bans = Table(
    'refresh_bans',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('ip', String(64), nullable=False),
    Column('username', String(50), nullable=False),
    Column('expires_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('ip', 'username', name='uq_refresh_bans_ip_username'),
    Index('idx_refresh_bans_expires', 'expires_at'),
)
