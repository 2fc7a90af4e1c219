"""Tests for celery_app.py configuration and signal handlers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from bandhub_worker import celery_app
from bandhub_worker.celery_app import app


class TestCeleryConfig:
    def test_priority_transport(self):
        options = app.conf.broker_transport_options
        assert options["priority_steps"] == [0, 3, 6, 9]
        assert options["sep"] == ":"
        assert options["queue_order_strategy"] == "priority"

    def test_single_prefetch_and_late_ack(self):
        assert app.conf.worker_prefetch_multiplier == 1
        assert app.conf.task_acks_late is True

    def test_monitoring_routes(self):
        assert app.conf.task_routes["sample_queue_metrics"]["queue"] == "monitoring"
        assert app.conf.task_routes["run_scheduled_cleanup"]["queue"] == "maintenance"
        assert app.conf.task_routes["run_scheduled_rematch"]["queue"] == "video-processing"

    def test_beat_schedule(self):
        tasks = {entry["task"] for entry in app.conf.beat_schedule.values()}
        assert tasks == {
            "run_scheduled_sync",
            "run_scheduled_full_sync",
            "run_scheduled_promotion",
            "run_scheduled_rematch",
            "run_scheduled_cleanup",
            "sample_queue_metrics",
            "check_stuck_jobs",
        }


class TestSignals:
    def test_prerun_and_postrun_track_active_jobs(self):
        task = MagicMock()
        task.name = "run_pipeline_job"
        task.request.delivery_info = {"routing_key": "video-sync"}

        with patch.object(celery_app.queue_monitor, "record_job_start") as start, \
             patch.object(celery_app.queue_monitor, "record_job_end") as end:
            celery_app.on_task_prerun(task_id="t1", task=task)
            celery_app.on_task_postrun(task_id="t1", task=task, state="SUCCESS")

        start.assert_called_once_with("t1", "run_pipeline_job", queue="video-sync")
        end.assert_called_once_with("t1")
        assert "t1" not in celery_app._task_started

    def test_worker_ready_fails_stale_runs(self):
        with patch.object(celery_app, "mark_stale_sync_jobs_failed") as mark, \
             patch.object(celery_app, "start_metrics_server") as server:
            celery_app.on_worker_ready(sender=MagicMock(hostname="worker1@host"))
        mark.assert_called_once()
        # Disabled in the test environment
        server.assert_not_called()
