"""Queue and quota monitoring tasks."""

from __future__ import annotations

from celery import shared_task

from ..external.guard import get_youtube_guard
from ..logging import logger
from ..metrics import youtube_quota_remaining, youtube_quota_used
from ..services import queue_monitor


@shared_task(name="sample_queue_metrics")
def sample_queue_metrics() -> dict:
    """Publish priority distribution and quota gauges."""
    report = queue_monitor.sample_priority_distribution()

    snapshot = get_youtube_guard().quota.snapshot()
    youtube_quota_used.set(snapshot.used)
    youtube_quota_remaining.set(snapshot.remaining)
    if snapshot.alert_level != "OK":
        logger.warning(
            "youtube_quota_alert",
            level=snapshot.alert_level,
            used=snapshot.used,
            limit=snapshot.limit,
            resets_at=snapshot.resets_at.isoformat(),
        )

    return {"queues": report, "quota": {"used": snapshot.used, "remaining": snapshot.remaining}}


@shared_task(name="check_stuck_jobs")
def check_stuck_jobs() -> dict:
    stuck = queue_monitor.check_stuck_jobs()
    return {"stuck": len(stuck), "jobs": stuck}
