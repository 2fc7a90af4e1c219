"""Tests for services/scheduler.py module."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest

from bandhub_worker.catalog import Band, RawVideo, SyncJobRecord
from bandhub_worker.services.scheduler import (
    QUEUE_MAINTENANCE,
    QUEUE_PROCESSING,
    QUEUE_SYNC,
    JobPriority,
    determine_priority,
    enqueue_promotion,
    enqueue_promotion_batch,
    tier_name,
    trigger_cleanup,
    trigger_rematch,
    trigger_sync,
)
from bandhub_worker.utils.datetime_utils import now_utc


@pytest.fixture
def mock_task():
    with patch("bandhub_worker.jobs.pipeline_tasks.run_pipeline_job") as task:
        yield task


def _submitted(mock_task):
    kwargs = mock_task.apply_async.call_args.kwargs
    return kwargs["args"][0], kwargs


class TestDeterminePriority:
    def test_default_is_normal(self):
        assert determine_priority("sync") == JobPriority.NORMAL

    def test_explicit_wins(self):
        assert determine_priority("sync", explicit=0, scope_all=True) == JobPriority.CRITICAL

    def test_explicit_off_step_falls_back_to_normal(self):
        assert determine_priority("sync", explicit=5) == JobPriority.NORMAL

    def test_featured_band_is_critical(self):
        recent = now_utc() - timedelta(hours=1)
        assert determine_priority("promote", featured_band=True, published_at=recent) == JobPriority.CRITICAL

    def test_recent_video_is_high(self):
        now = now_utc()
        assert determine_priority("promote", published_at=now - timedelta(hours=23), now=now) == JobPriority.HIGH
        assert determine_priority("promote", published_at=now - timedelta(hours=25), now=now) == JobPriority.NORMAL

    def test_bulk_and_background_work_are_low(self):
        assert determine_priority("promote", bulk=True) == JobPriority.LOW
        assert determine_priority("sync", scope_all=True) == JobPriority.LOW
        assert determine_priority("cleanup") == JobPriority.LOW

    def test_lower_number_runs_first(self):
        assert JobPriority.CRITICAL < JobPriority.HIGH < JobPriority.NORMAL < JobPriority.LOW


class TestTierName:
    @pytest.mark.parametrize(
        ("priority", "tier"),
        [(0, "critical"), (2, "high"), (3, "high"), (6, "normal"), (9, "low"), (None, "normal")],
    )
    def test_buckets(self, priority, tier):
        assert tier_name(priority) == tier


class TestTriggerSync:
    def test_all_scope_is_low_priority(self, patch_get_session, session_factory, mock_task):
        job = trigger_sync("all", triggered_by="admin")

        payload, kwargs = _submitted(mock_task)
        assert job.queue == QUEUE_SYNC
        assert job.priority == JobPriority.LOW
        assert kwargs["priority"] == 9
        assert kwargs["queue"] == QUEUE_SYNC
        assert kwargs["task_id"] == job.job_id
        assert payload["kind"] == "sync"
        assert payload["scope_type"] == "all"
        assert payload["sync_job_id"] == job.sync_job_id

        with session_factory() as session:
            record = session.get(SyncJobRecord, job.sync_job_id)
            assert record.status == "QUEUED"
            assert record.celery_task_id == job.job_id
            assert record.triggered_by == "admin"
            assert record.scope == "all"

    def test_featured_band_is_critical(self, seed, patch_get_session, mock_task):
        band_id = seed(Band(name="Human Jukebox", slug="human-jukebox", school_name="Southern University", is_featured=True))[0]
        job = trigger_sync(f"band:{band_id}", mode="FULL_SYNC", force=True)
        payload, _ = _submitted(mock_task)
        assert job.priority == JobPriority.CRITICAL
        assert payload["mode"] == "FULL_SYNC"
        assert payload["force"] is True
        assert payload["entity_id"] == band_id

    def test_plain_band_is_normal(self, seed, patch_get_session, mock_task):
        band_id = seed(Band(name="Sonic Boom", slug="sonic-boom", school_name="Jackson State University"))[0]
        assert trigger_sync(band_id).priority == JobPriority.NORMAL

    def test_invalid_scope(self, patch_get_session, mock_task):
        with pytest.raises(ValueError):
            trigger_sync("band:abc")
        mock_task.apply_async.assert_not_called()


class TestTriggerCleanup:
    def test_routes_to_maintenance(self, mock_task):
        job = trigger_cleanup("duplicates", dry_run=True)
        payload, kwargs = _submitted(mock_task)
        assert job.queue == QUEUE_MAINTENANCE
        assert kwargs["priority"] == JobPriority.LOW
        assert payload == {"kind": "cleanup", "scope": "duplicates", "dry_run": True}



class TestTriggerRematch:
    def test_routes_to_processing_at_low(self, mock_task):
        job = trigger_rematch(after_id=40, limit=200)
        payload, kwargs = _submitted(mock_task)
        assert job.queue == QUEUE_PROCESSING
        assert kwargs["queue"] == QUEUE_PROCESSING
        assert kwargs["priority"] == JobPriority.LOW
        assert kwargs["task_id"] == job.job_id
        assert payload == {"kind": "match", "after_id": 40, "limit": 200}

    def test_defaults_start_from_the_beginning(self, mock_task):
        trigger_rematch()
        payload, _ = _submitted(mock_task)
        assert payload == {"kind": "match", "after_id": None, "limit": None}

class TestEnqueuePromotion:
    def test_deduplicates_pending(self, patch_get_session, mock_task):
        with patch("bandhub_worker.services.scheduler.acquire_redis_lock", return_value=False) as lock:
            assert enqueue_promotion("v1") is None
        lock.assert_called_once_with("pending:promote:v1", timeout=3600)
        mock_task.apply_async.assert_not_called()

    def test_recent_video_is_high(self, seed, patch_get_session, mock_task):
        band_id = seed(Band(name="Sonic Boom", slug="sonic-boom", school_name="Jackson State University"))[0]
        seed(RawVideo(external_id="v1", title="Sonic Boom", matched_band_id=band_id, published_at=now_utc() - timedelta(hours=2)))
        with patch("bandhub_worker.services.scheduler.acquire_redis_lock", return_value=True):
            job = enqueue_promotion("v1")
        payload, kwargs = _submitted(mock_task)
        assert job.job_id == "promote-v1"
        assert job.queue == QUEUE_PROCESSING
        assert kwargs["priority"] == JobPriority.HIGH
        assert payload["external_ids"] == ["v1"]

    def test_featured_band_is_critical(self, seed, patch_get_session, mock_task):
        band_id = seed(Band(name="Human Jukebox", slug="human-jukebox", school_name="Southern University", is_featured=True))[0]
        seed(RawVideo(external_id="v2", title="Human Jukebox", matched_band_id=band_id, published_at=now_utc() - timedelta(days=30)))
        with patch("bandhub_worker.services.scheduler.acquire_redis_lock", return_value=True):
            job = enqueue_promotion("v2")
        assert job.priority == JobPriority.CRITICAL

    def test_batch_is_low(self, mock_task):
        job = enqueue_promotion_batch(limit=100)
        payload, kwargs = _submitted(mock_task)
        assert job.priority == JobPriority.LOW
        assert payload == {"kind": "promote", "external_ids": None, "limit": 100}
