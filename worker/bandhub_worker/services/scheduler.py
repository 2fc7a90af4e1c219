"""Job submission and priority assignment.

Priorities ride on Celery's Redis transport, where a lower number is
served first. Four tiers are used and the broker is configured with
matching ``priority_steps`` so each tier gets its own list.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from uuid import uuid4

from sqlalchemy import select

from ..catalog.sync_jobs import SyncMode
from ..config import settings
from ..db import db_models, get_session
from ..logging import logger
from ..models import CleanupJobPayload, MatchJobPayload, PromotionJobPayload, SyncJobPayload
from ..utils.datetime_utils import ensure_utc, now_utc
from ..utils.redis_lock import acquire_redis_lock
from .sync_jobs import queue_sync_job

QUEUE_SYNC = "video-sync"
QUEUE_PROCESSING = "video-processing"
QUEUE_MAINTENANCE = "maintenance"
QUEUE_MONITORING = "monitoring"
PIPELINE_QUEUES = (QUEUE_SYNC, QUEUE_PROCESSING, QUEUE_MAINTENANCE)

RECENT_VIDEO_WINDOW = timedelta(hours=24)
PROMOTION_PENDING_PREFIX = "pending:promote:"


class JobPriority(IntEnum):
    CRITICAL = 0
    HIGH = 3
    NORMAL = 6
    LOW = 9


PRIORITY_STEPS = [p.value for p in JobPriority]


def tier_name(priority: int | None) -> str:
    """Bucket any numeric priority into its tier name."""
    value = JobPriority.NORMAL if priority is None else int(priority)
    for tier in JobPriority:
        if value <= tier.value:
            return tier.name.lower()
    return JobPriority.LOW.name.lower()


def determine_priority(
    kind: str,
    *,
    explicit: int | None = None,
    featured_band: bool = False,
    published_at: datetime | None = None,
    bulk: bool = False,
    scope_all: bool = False,
    now: datetime | None = None,
) -> JobPriority:
    """Pick a tier for a job. First matching rule wins."""
    if explicit is not None:
        return JobPriority(explicit) if explicit in PRIORITY_STEPS else JobPriority.NORMAL
    if featured_band:
        return JobPriority.CRITICAL
    published_at = ensure_utc(published_at)
    if published_at and (now or now_utc()) - published_at < RECENT_VIDEO_WINDOW:
        return JobPriority.HIGH
    if bulk:
        return JobPriority.LOW
    if kind == "sync" and scope_all:
        return JobPriority.LOW
    if kind == "cleanup":
        return JobPriority.LOW
    return JobPriority.NORMAL


@dataclass
class EnqueuedJob:
    job_id: str
    queue: str
    priority: int
    sync_job_id: int | None = None

    @property
    def tier(self) -> str:
        return tier_name(self.priority)


def _submit(payload: dict, queue: str, priority: JobPriority, task_id: str) -> None:
    from ..jobs.pipeline_tasks import run_pipeline_job

    run_pipeline_job.apply_async(
        args=[payload],
        queue=queue,
        routing_key=queue,
        priority=int(priority),
        task_id=task_id,
    )


def _is_featured_band(band_id: int | None) -> bool:
    if band_id is None:
        return False
    with get_session() as session:
        band = session.get(db_models.Band, band_id)
        return bool(band and band.is_featured)


def trigger_sync(
    scope: str | int = "all",
    mode: SyncMode | str = SyncMode.INCREMENTAL,
    force: bool = False,
    triggered_by: str = "admin",
    priority: int | None = None,
) -> EnqueuedJob:
    """Queue an ingestion run and return its job identifier.

    ``scope`` is ``"all"``, ``"band:<id>"``, ``"creator:<id>"`` or a band id.
    A QUEUED SyncJobRecord is written first so the run is visible before
    a worker picks it up.
    """
    payload = SyncJobPayload.from_scope(scope, mode=SyncMode(mode), force=force, triggered_by=triggered_by)
    job_priority = determine_priority(
        "sync",
        explicit=priority,
        featured_band=payload.scope_type == "band" and _is_featured_band(payload.entity_id),
        scope_all=payload.scope_type == "all",
    )
    task_id = str(uuid4())
    payload.sync_job_id = queue_sync_job(payload, celery_task_id=task_id)
    _submit(payload.model_dump(mode="json"), QUEUE_SYNC, job_priority, task_id)
    logger.info(
        "sync_job_submitted",
        job_id=task_id,
        sync_job_id=payload.sync_job_id,
        scope=payload.scope_label,
        mode=payload.mode.value,
        force=force,
        priority=tier_name(job_priority),
    )
    return EnqueuedJob(task_id, QUEUE_SYNC, int(job_priority), payload.sync_job_id)


def trigger_cleanup(
    scope: str = "all",
    dry_run: bool = False,
    priority: int | None = None,
) -> EnqueuedJob:
    """Queue a maintenance run on the single-slot maintenance queue."""
    payload = CleanupJobPayload(scope=scope, dry_run=dry_run)
    job_priority = determine_priority("cleanup", explicit=priority)
    task_id = str(uuid4())
    _submit(payload.model_dump(mode="json"), QUEUE_MAINTENANCE, job_priority, task_id)
    logger.info(
        "cleanup_job_submitted",
        job_id=task_id,
        scope=scope,
        dry_run=dry_run,
        priority=tier_name(job_priority),
    )
    return EnqueuedJob(task_id, QUEUE_MAINTENANCE, int(job_priority))


def trigger_rematch(
    after_id: int | None = None,
    limit: int | None = None,
    priority: int | None = None,
) -> EnqueuedJob:
    """Queue a re-match batch over unmatched raw videos, starting after ``after_id``."""
    payload = MatchJobPayload(after_id=after_id, limit=limit)
    job_priority = determine_priority("match", explicit=priority, bulk=True)
    task_id = str(uuid4())
    _submit(payload.model_dump(mode="json"), QUEUE_PROCESSING, job_priority, task_id)
    logger.info(
        "rematch_job_submitted",
        job_id=task_id,
        after_id=after_id,
        limit=limit,
        priority=tier_name(job_priority),
    )
    return EnqueuedJob(task_id, QUEUE_PROCESSING, int(job_priority))


def _promotion_context(external_id: str) -> tuple[bool, datetime | None]:
    RawVideo = db_models.RawVideo
    Band = db_models.Band
    with get_session() as session:
        row = session.execute(
            select(Band.is_featured, RawVideo.published_at)
            .join(Band, Band.id == RawVideo.matched_band_id)
            .where(RawVideo.external_id == external_id)
        ).first()
    if row is None:
        return False, None
    return bool(row.is_featured), row.published_at


def enqueue_promotion(external_id: str) -> EnqueuedJob | None:
    """Queue promotion of one video unless one is already pending.

    Returns None when the enqueue collapsed into an existing pending job.
    """
    pending_key = f"{PROMOTION_PENDING_PREFIX}{external_id}"
    if not acquire_redis_lock(pending_key, timeout=settings.pipeline_config.promotion_dedupe_seconds):
        logger.debug("promotion_already_pending", external_id=external_id)
        return None

    featured, published_at = _promotion_context(external_id)
    job_priority = determine_priority("promote", featured_band=featured, published_at=published_at)
    task_id = f"promote-{external_id}"
    payload = PromotionJobPayload(external_ids=[external_id])
    _submit(payload.model_dump(mode="json"), QUEUE_PROCESSING, job_priority, task_id)
    logger.debug("promotion_job_submitted", external_id=external_id, priority=tier_name(job_priority))
    return EnqueuedJob(task_id, QUEUE_PROCESSING, int(job_priority))


def enqueue_promotion_batch(limit: int | None = None) -> EnqueuedJob:
    """Queue a sweep over every eligible video (bounded by the batch cap)."""
    payload = PromotionJobPayload(limit=limit)
    job_priority = determine_priority("promote", bulk=True)
    task_id = str(uuid4())
    _submit(payload.model_dump(mode="json"), QUEUE_PROCESSING, job_priority, task_id)
    logger.info("promotion_batch_submitted", job_id=task_id, limit=limit)
    return EnqueuedJob(task_id, QUEUE_PROCESSING, int(job_priority))
