"""Beat-driven tasks that submit pipeline jobs with the right priority."""

from __future__ import annotations

from dataclasses import asdict

from celery import shared_task

from ..catalog.sync_jobs import SyncMode
from ..logging import logger
from ..services.scheduler import enqueue_promotion_batch, trigger_cleanup, trigger_rematch, trigger_sync


@shared_task(name="run_scheduled_sync")
def run_scheduled_sync() -> dict:
    """Daily incremental sync of every active band and creator."""
    job = trigger_sync("all", mode=SyncMode.INCREMENTAL, triggered_by="scheduler")
    logger.info("scheduled_sync_submitted", job_id=job.job_id, sync_job_id=job.sync_job_id)
    return asdict(job)


@shared_task(name="run_scheduled_full_sync")
def run_scheduled_full_sync() -> dict:
    """Weekly full walk. Also refreshes what the staleness sweep looks at."""
    job = trigger_sync("all", mode=SyncMode.FULL, force=True, triggered_by="scheduler")
    logger.info("scheduled_full_sync_submitted", job_id=job.job_id, sync_job_id=job.sync_job_id)
    return asdict(job)


@shared_task(name="run_scheduled_promotion")
def run_scheduled_promotion() -> dict:
    """Sweep for matched videos whose per-video promotion was missed."""
    return asdict(enqueue_promotion_batch())


@shared_task(name="run_scheduled_rematch")
def run_scheduled_rematch() -> dict:
    """Apply current patterns and aliases to the unmatched backlog from the start."""
    return asdict(trigger_rematch())


@shared_task(name="run_scheduled_cleanup")
def run_scheduled_cleanup() -> dict:
    return asdict(trigger_cleanup("all", dry_run=False))
