"""
Engine and session handling for the entitlement store.

Routes receive a request-scoped session through get_db_session; jobs open
one with session_scope. Repositories and services never create sessions of
their own, the caller passes one in and decides when to commit.
"""

import os
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


class DatabaseNotConfiguredError(RuntimeError):
    """DATABASE_URL is missing."""
    pass


def database_url_from_env() -> str:
    """
    Read DATABASE_URL, rewriting the legacy postgres:// scheme.

    Raises:
        DatabaseNotConfiguredError: If DATABASE_URL is not set
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise DatabaseNotConfiguredError("DATABASE_URL environment variable is not set")

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def get_engine() -> Engine:
    """
    Get or create the engine singleton.

    Postgres connections are pooled (5 + 10 overflow, recycled every 30
    minutes); SQLite URLs get the driver defaults.
    """
    global _engine
    if _engine is not None:
        return _engine

    url = database_url_from_env()
    options = {"pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10, pool_recycle=1800)

    _engine = create_engine(url, **options)
    logger.info("Database engine created", extra={
        "dialect": _engine.dialect.name,
        "pooled": not url.startswith("sqlite")
    })
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )
    return _SessionLocal


def get_db_session() -> Iterator[Session]:
    """
    FastAPI dependency yielding one session per request.

    Raises:
        HTTPException: 503 when the database is not configured
    """
    try:
        factory = get_session_factory()
    except DatabaseNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for jobs and scripts. Uncommitted work is rolled back on error.

    Usage:
        with session_scope() as session:
            expire_elapsed_entitlements(session)
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
