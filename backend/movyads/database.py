"""Database session and base configuration.

WHAT:
    Provides the SQLAlchemy engine and session factory used by the API,
    the sync worker and the migrations, plus a dialect-aware INSERT
    builder for ``ON CONFLICT`` upserts.

WHY:
    - One engine per process (the worker loop is single-threaded)
    - Upserts are the only write primitive for dimension and fact rows,
      and both PostgreSQL (production) and SQLite (tests) support them

USAGE:
    # FastAPI dependency
    from movyads.database import get_db

    # Worker / scripts
    from movyads.database import get_sync_session
    with get_sync_session() as db:
        ...

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/dialects/postgresql.html#insert-on-conflict-upsert
    - movyads/services/insights_writer.py (main consumer of upsert_insert)
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Returns:
        SQLAlchemy connection string

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        # Attempt to load from local .env for developer convenience
        from movyads.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )

    # Heroku/Supabase style URLs are not accepted by SQLAlchemy 2.x
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


DATABASE_URL = _get_database_url()


def build_engine(url: str):
    """Create an engine with pool settings appropriate to the backend.

    NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        pool_size=5,            # Worker + API share few connections
        max_overflow=10,
        pool_recycle=3600,      # Recycle connections every hour
        pool_pre_ping=True,     # Validate connections before use
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# =============================================================================
# BASE MODEL (imported from models for single registry)
# =============================================================================

from .models import Base  # noqa: E402


# =============================================================================
# UPSERT SUPPORT
# =============================================================================

def upsert_insert(db: Session, model):
    """Return a dialect-specific ``insert()`` for ``model`` that supports
    ``on_conflict_do_update``.

    Raises:
        RuntimeError: For backends without ON CONFLICT support
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Upserts are not supported for database dialect '{dialect}'")


# =============================================================================
# FASTAPI DEPENDENCIES / CONTEXT MANAGERS
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI (worker, scripts).

    Example:
        with get_sync_session() as db:
            job = claim(db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
