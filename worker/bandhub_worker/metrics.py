"""Prometheus metrics for the video worker.

Metrics live in the default registry. Under Celery's prefork pool set
PROMETHEUS_MULTIPROC_DIR so child processes write to shared files and the
exposition server aggregates them.
"""

from __future__ import annotations

import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    multiprocess,
    start_http_server,
)

from .logging import logger

# External API
youtube_api_calls_total = Counter(
    "bandhub_youtube_api_calls_total",
    "YouTube API calls by endpoint and outcome",
    ["endpoint", "outcome"],
)
youtube_calls_in_progress = Gauge(
    "bandhub_youtube_calls_in_progress",
    "YouTube API calls currently in flight",
    ["endpoint"],
    multiprocess_mode="livesum",
)
youtube_circuit_open_total = Counter(
    "bandhub_youtube_circuit_open_total",
    "Circuit breaker trips to OPEN",
    ["circuit"],
)
youtube_quota_used = Gauge(
    "bandhub_youtube_quota_used",
    "Quota units consumed in the current quota day",
    multiprocess_mode="max",
)
youtube_quota_remaining = Gauge(
    "bandhub_youtube_quota_remaining",
    "Quota units remaining in the current quota day",
    multiprocess_mode="min",
)
youtube_quota_rejections_total = Counter(
    "bandhub_youtube_quota_rejections_total",
    "Calls rejected locally because the daily quota would be exceeded",
    ["endpoint"],
)

# Pipeline
videos_synced_total = Counter(
    "bandhub_videos_synced_total",
    "Raw videos processed by ingestion",
    ["result"],
)
videos_promoted_total = Counter(
    "bandhub_videos_promoted_total",
    "Promotion outcomes per video",
    ["result"],
)
videos_rematched_total = Counter(
    "bandhub_videos_rematched_total",
    "Outcomes of re-running the matcher over unmatched raw videos",
    ["result"],
)
maintenance_rows_total = Counter(
    "bandhub_maintenance_rows_total",
    "Rows removed or hidden by maintenance",
    ["scope"],
)

# Jobs and queues
job_processing_seconds = Histogram(
    "bandhub_job_processing_seconds",
    "Job processing duration",
    ["task", "status"],
    buckets=(0.5, 1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
)
jobs_total = Counter(
    "bandhub_jobs_total",
    "Finished jobs by task and status",
    ["task", "status"],
)
queue_jobs = Gauge(
    "bandhub_queue_jobs",
    "Sampled jobs per queue, state and priority tier",
    ["queue", "state", "priority"],
    multiprocess_mode="livemax",
)
queue_jobs_percent = Gauge(
    "bandhub_queue_jobs_percent",
    "Share of a queue state's jobs in each priority tier",
    ["queue", "state", "priority"],
    multiprocess_mode="livemax",
)
stuck_jobs = Gauge(
    "bandhub_stuck_jobs",
    "Jobs running past the stuck threshold by severity",
    ["severity"],
    multiprocess_mode="livemax",
)


def start_metrics_server(port: int) -> None:
    """Serve the text exposition endpoint on ``port``."""
    if os.getenv("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        start_http_server(port, registry=registry)
    else:
        start_http_server(port)
    logger.info("metrics_server_started", port=port)
