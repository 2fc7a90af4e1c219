"""Route a typed job payload to the worker that handles it."""

from __future__ import annotations

from typing import Any, Callable

from ..config import settings
from ..db import get_session
from ..logging import logger
from ..models import CleanupJobPayload, MatchJobPayload, PromotionJobPayload, SyncJobPayload
from ..services.ingestion import enqueue_promotion_candidates, run_sync
from ..services.maintenance import run_cleanup
from ..services.promotion import promote_videos
from ..services.rematch import rematch_videos
from ..services.scheduler import PROMOTION_PENDING_PREFIX, trigger_rematch
from ..utils.redis_lock import acquire_redis_lock, release_redis_lock

MAINTENANCE_LOCK = "lock:maintenance"

ProgressCallback = Callable[[int, dict[str, Any]], None]


def _run_promotion(payload: PromotionJobPayload) -> dict[str, Any]:
    # Clear the pending markers first so ingestion can re-enqueue anything
    # that changes while this batch runs
    for external_id in payload.external_ids or []:
        release_redis_lock(f"{PROMOTION_PENDING_PREFIX}{external_id}")
    with get_session() as session:
        result = promote_videos(session, external_ids=payload.external_ids, limit=payload.limit)
    return {"status": "completed", **result.as_dict()}


def _run_cleanup(payload: CleanupJobPayload, progress: ProgressCallback | None) -> dict[str, Any]:
    if not acquire_redis_lock(MAINTENANCE_LOCK, timeout=settings.pipeline_config.maintenance_lock_seconds):
        logger.warning("cleanup_skipped_locked", scope=payload.scope)
        return {"status": "skipped", "reason": "maintenance_in_progress", "scope": payload.scope}
    try:
        with get_session() as session:
            result = run_cleanup(session, scope=payload.scope, dry_run=payload.dry_run, progress=progress)
        return {"status": "failed" if result.errors else "completed", **result.as_dict()}
    finally:
        release_redis_lock(MAINTENANCE_LOCK)


def _run_match(payload: MatchJobPayload) -> dict[str, Any]:
    with get_session() as session:
        result = rematch_videos(session, after_id=payload.after_id, limit=payload.limit)
    # Enqueue only after the matches are committed
    promotions = enqueue_promotion_candidates(result.matched_external_ids)
    next_job = None
    if result.has_more:
        next_job = trigger_rematch(after_id=result.last_id, limit=payload.limit).job_id
    return {
        "status": "completed",
        **result.as_dict(),
        "promotions_enqueued": promotions,
        "next_job_id": next_job,
    }


def dispatch_job(
    payload: SyncJobPayload | PromotionJobPayload | CleanupJobPayload | MatchJobPayload,
    task_id: str | None = None,
    progress: ProgressCallback | None = None,
) -> dict[str, Any]:
    """Run one job and return its result summary."""
    if isinstance(payload, SyncJobPayload):
        return run_sync(payload, celery_task_id=task_id)
    if isinstance(payload, PromotionJobPayload):
        return _run_promotion(payload)
    if isinstance(payload, CleanupJobPayload):
        return _run_cleanup(payload, progress)
    if isinstance(payload, MatchJobPayload):
        return _run_match(payload)
    raise TypeError(f"Unsupported job payload: {type(payload).__name__}")
