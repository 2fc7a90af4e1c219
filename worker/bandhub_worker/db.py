"""
Database helpers for the video worker.

Synchronous session management for Celery tasks, plus a single namespace
exposing the catalog ORM models.
"""

from __future__ import annotations

from contextlib import contextmanager
from types import SimpleNamespace
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .catalog import (
    Band,
    ContentCreator,
    HideReason,
    PublishedVideo,
    RawVideo,
    SyncJobRecord,
    SyncJobStatus,
    SyncMode,
    SyncStatus,
)
from .config import settings
from .logging import logger

db_models = SimpleNamespace(
    # Enums
    HideReason=HideReason,
    SyncJobStatus=SyncJobStatus,
    SyncMode=SyncMode,
    SyncStatus=SyncStatus,
    # Catalog models
    Band=Band,
    ContentCreator=ContentCreator,
    RawVideo=RawVideo,
    PublishedVideo=PublishedVideo,
    SyncJobRecord=SyncJobRecord,
)


engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    class_=Session
)


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Provide a transactional database session context manager.

    Use this in Celery tasks and other synchronous code paths.
    Automatically handles commit/rollback and session cleanup.

    Usage:
        with get_session() as session:
            session.add(object)
            # Commit happens automatically on exit
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception as exc:  # pragma: no cover
        session.rollback()
        logger.exception("DB session rollback", error=str(exc))
        raise
    finally:
        session.close()


__all__ = ["get_session", "db_models", "engine"]
