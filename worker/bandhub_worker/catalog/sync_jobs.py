"""Audit trail of ingestion runs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class SyncMode(str, Enum):
    INCREMENTAL = "INCREMENTAL_SYNC"
    FULL = "FULL_SYNC"


class SyncJobStatus(str, Enum):
    """Lifecycle of a sync job record."""

    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SyncJobRecord(Base):
    """One row per triggered ingestion run. The error list is append-only."""

    __tablename__ = "sync_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_type: Mapped[str] = mapped_column(String(30), nullable=False)
    scope: Mapped[str] = mapped_column(String(50), nullable=False)
    # Not foreign keys: a run may name a missing or since-deleted entity
    band_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    creator_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=SyncJobStatus.QUEUED.value, nullable=False, index=True
    )
    videos_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    videos_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    videos_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    videos_skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    quota_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    celery_task_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_sync_jobs_scope_created", "scope", "created_at"),
    )
