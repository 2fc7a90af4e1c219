"""Celery app configuration for the video worker."""

from __future__ import annotations

import time

from celery import Celery, signals
from celery.schedules import crontab

from .config import settings
from .logging import logger
from .metrics import job_processing_seconds, jobs_total, start_metrics_server
from .services import queue_monitor
from .services.scheduler import (
    PRIORITY_STEPS,
    QUEUE_MAINTENANCE,
    QUEUE_MONITORING,
    QUEUE_PROCESSING,
    QUEUE_SYNC,
    JobPriority,
)
from .services.sync_jobs import mark_stale_sync_jobs_failed

celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_track_started": True,
    "worker_prefetch_multiplier": 1,
    "task_acks_late": True,
    "task_time_limit": 7200,        # 2 hours hard limit
    "task_soft_time_limit": 6900,   # 1h 55m soft limit
    "task_default_queue": QUEUE_SYNC,
    "task_default_priority": int(JobPriority.NORMAL),
    "broker_transport_options": {
        "priority_steps": PRIORITY_STEPS,
        "sep": queue_monitor.BROKER_PRIORITY_SEP,
        "queue_order_strategy": "priority",
    },
}

app = Celery(
    "bandhub-worker",
    broker=settings.celery_broker_url,
    backend=settings.redis_url,
    include=["bandhub_worker.jobs.tasks"],
)
app.conf.update(**celery_config)
# run_pipeline_job is routed per call (sync / processing / maintenance)
app.conf.task_routes = {
    "run_scheduled_sync": {"queue": QUEUE_SYNC, "routing_key": QUEUE_SYNC},
    "run_scheduled_full_sync": {"queue": QUEUE_SYNC, "routing_key": QUEUE_SYNC},
    "run_scheduled_promotion": {"queue": QUEUE_PROCESSING, "routing_key": QUEUE_PROCESSING},
    "run_scheduled_rematch": {"queue": QUEUE_PROCESSING, "routing_key": QUEUE_PROCESSING},
    "run_scheduled_cleanup": {"queue": QUEUE_MAINTENANCE, "routing_key": QUEUE_MAINTENANCE},
    "sample_queue_metrics": {"queue": QUEUE_MONITORING, "routing_key": QUEUE_MONITORING},
    "check_stuck_jobs": {"queue": QUEUE_MONITORING, "routing_key": QUEUE_MONITORING},
}
# Workers per queue (set with -Q/--concurrency in the deployment):
#   video-sync 3, video-processing 2, maintenance 1, monitoring 1
#
# Quota resets at midnight Pacific, so the daily sync runs shortly after
# (08:00 UTC = midnight PST / 1 AM PDT) to get the whole budget.
app.conf.beat_schedule = {
    "daily-incremental-sync": {
        "task": "run_scheduled_sync",
        "schedule": crontab(minute=0, hour=8),
        "options": {"queue": QUEUE_SYNC, "routing_key": QUEUE_SYNC},
    },
    "weekly-full-sync": {
        "task": "run_scheduled_full_sync",
        "schedule": crontab(minute=30, hour=8, day_of_week="sun"),
        "options": {"queue": QUEUE_SYNC, "routing_key": QUEUE_SYNC},
    },
    "promotion-sweep-every-30-minutes": {
        "task": "run_scheduled_promotion",
        "schedule": crontab(minute="*/30"),
        "options": {"queue": QUEUE_PROCESSING, "routing_key": QUEUE_PROCESSING},
    },
    "daily-rematch": {
        "task": "run_scheduled_rematch",
        "schedule": crontab(minute=0, hour=10),
        "options": {"queue": QUEUE_PROCESSING, "routing_key": QUEUE_PROCESSING},
    },
    "daily-cleanup": {
        "task": "run_scheduled_cleanup",
        "schedule": crontab(minute=0, hour=11),
        "options": {"queue": QUEUE_MAINTENANCE, "routing_key": QUEUE_MAINTENANCE},
    },
    "queue-metrics-every-minute": {
        "task": "sample_queue_metrics",
        "schedule": crontab(),
        "options": {"queue": QUEUE_MONITORING, "routing_key": QUEUE_MONITORING},
    },
    "stuck-job-check-every-5-minutes": {
        "task": "check_stuck_jobs",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": QUEUE_MONITORING, "routing_key": QUEUE_MONITORING},
    },
}

# task_id -> monotonic start, per worker process
_task_started: dict[str, float] = {}


@signals.worker_ready.connect
def on_worker_ready(sender=None, **kwargs):
    """Called when Celery worker is ready. Fail sync runs left IN_PROGRESS by a crash."""
    worker_name = getattr(sender, "hostname", None) or str(sender) if sender else "unknown"
    logger.info("celery_worker_ready", worker=worker_name)
    try:
        mark_stale_sync_jobs_failed()
    except Exception as exc:
        logger.exception("failed_to_mark_stale_sync_jobs", error=str(exc))

    if settings.monitoring_config.enable_metrics:
        try:
            start_metrics_server(settings.monitoring_config.metrics_port)
        except OSError as exc:
            # Another worker on this host already serves the port
            logger.warning("metrics_server_not_started", error=str(exc))


@signals.worker_shutting_down.connect
def on_worker_shutting_down(sender=None, **kwargs):
    # sender for this signal is a string (the worker hostname), not an object
    worker_name = str(sender) if sender else "unknown"
    logger.info("celery_worker_shutting_down", worker=worker_name)


@signals.task_prerun.connect
def on_task_prerun(task_id=None, task=None, **kwargs):
    _task_started[task_id] = time.monotonic()
    delivery_info = getattr(task.request, "delivery_info", None) or {}
    queue_monitor.record_job_start(task_id, task.name, queue=delivery_info.get("routing_key"))


@signals.task_postrun.connect
def on_task_postrun(task_id=None, task=None, state=None, **kwargs):
    started = _task_started.pop(task_id, None)
    status = (state or "UNKNOWN").lower()
    if started is not None:
        job_processing_seconds.labels(task=task.name, status=status).observe(time.monotonic() - started)
    jobs_total.labels(task=task.name, status=status).inc()
    queue_monitor.record_job_end(task_id)
