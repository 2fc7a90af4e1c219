"""Queue sampling and stuck-job detection.

Waiting jobs are read straight from the broker lists (one list per
priority step), active and delayed jobs from worker inspection. Job start
times are kept in a Redis hash written by the task_prerun/task_postrun
signal handlers, so stuck detection sees every worker's jobs.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

import redis

from ..config import settings
from ..logging import logger
from ..metrics import queue_jobs, queue_jobs_percent, stuck_jobs
from ..utils.datetime_utils import now_utc
from ..utils.redis_lock import get_redis_client
from .scheduler import PIPELINE_QUEUES, PRIORITY_STEPS, JobPriority, tier_name

BROKER_PRIORITY_SEP = ":"
ACTIVE_JOBS_KEY = "bandhub:active_jobs"

TIERS = [tier.name.lower() for tier in JobPriority]
STATES = ("waiting", "active", "delayed")

# Minimum running time for each severity, most severe first
SEVERITY_LEVELS = (
    ("critical", timedelta(hours=2)),
    ("high", timedelta(hours=1)),
    ("medium", timedelta(minutes=30)),
)


def priority_queue_keys(queue: str) -> list[str]:
    """Broker list names for one queue, in the order the transport drains them."""
    return [queue if step == 0 else f"{queue}{BROKER_PRIORITY_SEP}{step}" for step in PRIORITY_STEPS]


def distribution(counts: Counter) -> dict[str, dict[str, float]]:
    """Counts and percentages per tier. Percentages are 0 for an empty sample."""
    total = sum(counts.values())
    return {
        tier: {
            "count": counts.get(tier, 0),
            "percentage": round(100.0 * counts.get(tier, 0) / total, 1) if total else 0.0,
        }
        for tier in TIERS
    }


def count_waiting(client: redis.Redis, queue: str, sample_size: int) -> Counter:
    counts: Counter = Counter()
    for step, key in zip(PRIORITY_STEPS, priority_queue_keys(queue)):
        for raw in client.lrange(key, 0, sample_size - 1):
            try:
                message = json.loads(raw)
                priority = (message.get("properties") or {}).get("priority", step)
            except (TypeError, ValueError):
                priority = step
            counts[tier_name(priority)] += 1
    return counts


def _task_queue(task: dict[str, Any]) -> str | None:
    info = task.get("delivery_info") or {}
    return info.get("routing_key") or info.get("exchange")


def _task_priority(task: dict[str, Any]) -> int | None:
    info = task.get("delivery_info") or {}
    return info.get("priority")


def count_inspected(inspect_result: dict[str, list] | None, scheduled: bool = False) -> dict[str, Counter]:
    """Group an inspect() reply (worker -> tasks) into per-queue tier counts."""
    counts: dict[str, Counter] = {}
    for tasks in (inspect_result or {}).values():
        for task in tasks or []:
            # scheduled() wraps the request one level deeper
            request = task.get("request", task) if scheduled else task
            queue = _task_queue(request)
            if queue is None:
                continue
            priority = task.get("priority") if scheduled else None
            if priority is None:
                priority = _task_priority(request)
            counts.setdefault(queue, Counter())[tier_name(priority)] += 1
    return counts


def sample_priority_distribution(app=None, client: redis.Redis | None = None) -> dict[str, dict[str, Any]]:
    """Sample every pipeline queue and publish the distribution gauges.

    Returns ``{queue: {state: {tier: {"count", "percentage"}}}}``.
    """
    cfg = settings.monitoring_config
    if app is None:
        from ..celery_app import app
    client = client or get_redis_client()

    inspector = app.control.inspect(timeout=cfg.inspect_timeout_seconds)
    active = count_inspected(inspector.active())
    reserved = count_inspected(inspector.reserved())
    delayed = count_inspected(inspector.scheduled(), scheduled=True)

    report: dict[str, dict[str, Any]] = {}
    for queue in PIPELINE_QUEUES:
        # Prefetched but not started still counts as waiting
        waiting = count_waiting(client, queue, cfg.waiting_sample_size) + reserved.get(queue, Counter())
        states = {
            "waiting": distribution(waiting),
            "active": distribution(active.get(queue, Counter())),
            "delayed": distribution(delayed.get(queue, Counter())),
        }
        for state, tiers in states.items():
            for tier, values in tiers.items():
                queue_jobs.labels(queue=queue, state=state, priority=tier).set(values["count"])
                queue_jobs_percent.labels(queue=queue, state=state, priority=tier).set(values["percentage"])
        report[queue] = states

    logger.info(
        "queue_priority_sampled",
        **{
            queue: {state: {t: v["count"] for t, v in tiers.items()} for state, tiers in states.items()}
            for queue, states in report.items()
        },
    )
    return report


# -----------------------------------------------------------------------------
# Stuck jobs
# -----------------------------------------------------------------------------
def record_job_start(
    task_id: str,
    task_name: str,
    queue: str | None = None,
    started_at: datetime | None = None,
    client: redis.Redis | None = None,
) -> None:
    entry = {
        "task": task_name,
        "queue": queue,
        "started_at": (started_at or now_utc()).isoformat(),
    }
    try:
        (client or get_redis_client()).hset(ACTIVE_JOBS_KEY, task_id, json.dumps(entry))
    except redis.RedisError as exc:
        logger.warning("active_job_record_failed", task_id=task_id, error=str(exc))


def record_job_end(task_id: str, client: redis.Redis | None = None) -> None:
    try:
        (client or get_redis_client()).hdel(ACTIVE_JOBS_KEY, task_id)
    except redis.RedisError as exc:
        logger.warning("active_job_clear_failed", task_id=task_id, error=str(exc))


def stuck_severity(elapsed: timedelta, threshold: timedelta) -> str | None:
    """None below the threshold, otherwise low/medium/high/critical."""
    if elapsed < threshold:
        return None
    for severity, minimum in SEVERITY_LEVELS:
        if elapsed >= minimum:
            return severity
    return "low"


def grade_stuck_jobs(
    entries: dict[str, str],
    now: datetime,
    threshold: timedelta,
) -> list[dict[str, Any]]:
    """Turn raw hash entries into stuck-job reports, longest-running first."""
    stuck: list[dict[str, Any]] = []
    for task_id, raw in entries.items():
        try:
            entry = json.loads(raw)
            started_at = datetime.fromisoformat(entry["started_at"])
        except (KeyError, TypeError, ValueError):
            logger.warning("active_job_entry_invalid", task_id=task_id)
            continue
        elapsed = now - started_at
        severity = stuck_severity(elapsed, threshold)
        if severity is None:
            continue
        stuck.append(
            {
                "task_id": task_id,
                "task": entry.get("task"),
                "queue": entry.get("queue"),
                "started_at": entry["started_at"],
                "running_minutes": int(elapsed.total_seconds() // 60),
                "severity": severity,
            }
        )
    stuck.sort(key=lambda job: job["running_minutes"], reverse=True)
    return stuck


def check_stuck_jobs(client: redis.Redis | None = None, now: datetime | None = None) -> list[dict[str, Any]]:
    """Report jobs running past the threshold. Alerts only; never cancels."""
    threshold = timedelta(minutes=settings.monitoring_config.stuck_job_threshold_minutes)
    entries = (client or get_redis_client()).hgetall(ACTIVE_JOBS_KEY)
    stuck = grade_stuck_jobs(entries, now or now_utc(), threshold)

    by_severity = Counter(job["severity"] for job in stuck)
    for severity in ("low", "medium", "high", "critical"):
        stuck_jobs.labels(severity=severity).set(by_severity.get(severity, 0))

    for job in stuck:
        if job["severity"] in ("high", "critical"):
            logger.error("job_stuck", **job)
        else:
            logger.warning("job_stuck", **job)
    if not stuck:
        logger.debug("no_stuck_jobs")
    return stuck
