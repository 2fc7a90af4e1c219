"""Celery entry point for queued pipeline jobs."""

from __future__ import annotations

from typing import Any

from celery import shared_task
from pydantic import ValidationError

from ..logging import logger
from ..models import parse_job_payload
from .dispatch import dispatch_job


def _progress_reporter(task):
    def report(percent: int, meta: dict[str, Any]) -> None:
        # Eager calls have no task id to attach state to
        if task.request.id:
            task.update_state(state="PROGRESS", meta={"percent": percent, **meta})

    return report


@shared_task(name="run_pipeline_job", bind=True)
def run_pipeline_job(self, payload: dict) -> dict:
    """Run a sync, promotion, match or cleanup job from its JSON payload.

    A payload that fails validation is rejected outright rather than
    retried, since it will never become valid.
    """
    try:
        job = parse_job_payload(payload)
    except ValidationError as exc:
        logger.error("pipeline_job_invalid_payload", task_id=self.request.id, error=str(exc))
        return {"status": "rejected", "reason": "invalid_payload", "errors": exc.errors(include_url=False)}

    logger.info("pipeline_job_started", task_id=self.request.id, kind=job.kind)
    result = dispatch_job(job, task_id=self.request.id, progress=_progress_reporter(self))
    logger.info("pipeline_job_completed", task_id=self.request.id, kind=job.kind, status=result.get("status"))
    return result
