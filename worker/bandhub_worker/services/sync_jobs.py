"""Helpers for recording ingestion runs as SyncJobRecord rows."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from ..db import db_models, get_session
from ..logging import logger
from ..models import SyncJobPayload
from ..utils.datetime_utils import ensure_utc, now_utc

# Cap stored errors so one broken channel cannot bloat the audit row
MAX_RECORDED_ERRORS = 200


class SyncJobTracker:
    """Mutable tracker for counts and errors accumulated during a sync run."""

    def __init__(self, record_id: int) -> None:
        self.record_id = record_id
        self.videos_found = 0
        self.videos_added = 0
        self.videos_updated = 0
        self.videos_skipped = 0
        self.quota_used = 0
        self.errors: list[dict[str, Any]] = []
        self.promotion_candidates: list[str] = []

    def add_error(self, message: str, **context: Any) -> None:
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append({"message": message[:500], "at": now_utc().isoformat(), **context})

    def summary(self) -> dict[str, Any]:
        return {
            "videos_found": self.videos_found,
            "videos_added": self.videos_added,
            "videos_updated": self.videos_updated,
            "videos_skipped": self.videos_skipped,
            "errors": len(self.errors),
            "quota_used": self.quota_used,
        }


def _scope_columns(payload: SyncJobPayload) -> dict[str, Any]:
    return {
        "job_type": payload.mode.value,
        "scope": payload.scope_label,
        "band_id": payload.entity_id if payload.scope_type == "band" else None,
        "creator_id": payload.entity_id if payload.scope_type == "creator" else None,
        "triggered_by": payload.triggered_by,
    }


def queue_sync_job(payload: SyncJobPayload, celery_task_id: str | None = None) -> int:
    """Create a QUEUED record at dispatch time so it is visible before pickup."""
    with get_session() as session:
        record = db_models.SyncJobRecord(
            status=db_models.SyncJobStatus.QUEUED.value,
            celery_task_id=celery_task_id,
            errors=[],
            **_scope_columns(payload),
        )
        session.add(record)
        session.flush()
        record_id = int(record.id)
        logger.info("sync_job_queued", sync_job_id=record_id, scope=payload.scope_label)
        return record_id


def start_sync_job(payload: SyncJobPayload, celery_task_id: str | None = None) -> int:
    """Create a record already IN_PROGRESS and return its ID."""
    with get_session() as session:
        record = db_models.SyncJobRecord(
            status=db_models.SyncJobStatus.IN_PROGRESS.value,
            started_at=now_utc(),
            celery_task_id=celery_task_id,
            errors=[],
            **_scope_columns(payload),
        )
        session.add(record)
        session.flush()
        record_id = int(record.id)
        logger.info("sync_job_started", sync_job_id=record_id, scope=payload.scope_label)
        return record_id


def activate_sync_job(payload: SyncJobPayload, celery_task_id: str | None = None) -> int:
    """Move the payload's queued record to IN_PROGRESS.

    * QUEUED: transition and stamp the real start time.
    * IN_PROGRESS (Celery redelivery): reuse it.
    * Missing or already finished: start a fresh record so the run is
      still tracked.
    """
    if payload.sync_job_id is None:
        return start_sync_job(payload, celery_task_id)

    with get_session() as session:
        record = session.get(db_models.SyncJobRecord, payload.sync_job_id)
        status = record.status if record else None
        if status == db_models.SyncJobStatus.IN_PROGRESS.value:
            return int(record.id)
        if status == db_models.SyncJobStatus.QUEUED.value:
            record.status = db_models.SyncJobStatus.IN_PROGRESS.value
            record.started_at = now_utc()
            if celery_task_id:
                record.celery_task_id = celery_task_id
            session.flush()
            logger.info("sync_job_activated", sync_job_id=record.id)
            return int(record.id)

    logger.warning(
        "sync_job_activate_fallback",
        sync_job_id=payload.sync_job_id,
        status=status,
    )
    return start_sync_job(payload, celery_task_id)


def complete_sync_job(
    tracker: SyncJobTracker,
    status: str,
    failure_reason: str | None = None,
) -> None:
    """Finalize a record with counts, errors, status and duration."""
    with get_session() as session:
        record = session.get(db_models.SyncJobRecord, tracker.record_id)
        if not record:
            logger.error("sync_job_missing", sync_job_id=tracker.record_id)
            return
        finished_at = now_utc()
        started_at = ensure_utc(record.started_at) or finished_at
        record.status = status
        record.completed_at = finished_at
        record.duration_seconds = (finished_at - started_at).total_seconds()
        record.videos_found = tracker.videos_found
        record.videos_added = tracker.videos_added
        record.videos_updated = tracker.videos_updated
        record.videos_skipped = tracker.videos_skipped
        record.quota_used = tracker.quota_used
        # Append-only: keep whatever an earlier attempt recorded
        record.errors = list(record.errors or []) + tracker.errors
        record.failure_reason = failure_reason
        session.flush()
        logger.info(
            "sync_job_completed",
            sync_job_id=tracker.record_id,
            status=status,
            failure_reason=failure_reason,
            **tracker.summary(),
        )


def mark_stale_sync_jobs_failed(max_age: timedelta = timedelta(hours=2)) -> int:
    """Fail records left IN_PROGRESS by a worker that died mid-run."""
    threshold = now_utc() - max_age
    with get_session() as session:
        stale = (
            session.query(db_models.SyncJobRecord)
            .filter(
                db_models.SyncJobRecord.status == db_models.SyncJobStatus.IN_PROGRESS.value,
                db_models.SyncJobRecord.started_at.isnot(None),
                db_models.SyncJobRecord.started_at < threshold,
            )
            .all()
        )
        for record in stale:
            record.status = db_models.SyncJobStatus.FAILED.value
            record.completed_at = now_utc()
            record.failure_reason = "Run was interrupted (worker shutdown or crash)"
            logger.warning(
                "marking_stale_sync_job_failed",
                sync_job_id=record.id,
                started_at=str(record.started_at),
            )
        if stale:
            logger.info("stale_sync_jobs_marked_failed", count=len(stale))
        return len(stale)
