"""Celery tasks for the video pipeline.

This module re-exports all tasks from specialized modules for Celery discovery:
- pipeline_tasks: queued sync, promotion, match and cleanup jobs
- scheduled_tasks: beat entries that submit pipeline jobs (sync, rematch,
  promotion sweep, cleanup)
- monitoring_tasks: queue distribution, quota gauges, stuck jobs
"""

from __future__ import annotations

from .monitoring_tasks import (
    check_stuck_jobs,
    sample_queue_metrics,
)
from .pipeline_tasks import (
    run_pipeline_job,
)
from .scheduled_tasks import (
    run_scheduled_cleanup,
    run_scheduled_full_sync,
    run_scheduled_promotion,
    run_scheduled_rematch,
    run_scheduled_sync,
)

__all__ = [
    "run_pipeline_job",
    "run_scheduled_sync",
    "run_scheduled_full_sync",
    "run_scheduled_promotion",
    "run_scheduled_rematch",
    "run_scheduled_cleanup",
    "sample_queue_metrics",
    "check_stuck_jobs",
]
