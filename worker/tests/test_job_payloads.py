"""Tests for models/jobs.py module."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from bandhub_worker.catalog.sync_jobs import SyncMode
from bandhub_worker.models import (
    CleanupJobPayload,
    MatchJobPayload,
    PromotionJobPayload,
    SyncJobPayload,
    parse_job_payload,
)


class TestSyncJobPayloadFromScope:
    @pytest.mark.parametrize(
        ("scope", "scope_type", "entity_id"),
        [
            ("all", "all", None),
            ("ALL", "all", None),
            ("band:3", "band", 3),
            ("creator:7", "creator", 7),
            ("12", "band", 12),
            (5, "band", 5),
        ],
    )
    def test_parses(self, scope, scope_type, entity_id):
        payload = SyncJobPayload.from_scope(scope)
        assert payload.scope_type == scope_type
        assert payload.entity_id == entity_id

    @pytest.mark.parametrize("scope", ["band:", "band:x", "venue:3", "southern"])
    def test_rejects(self, scope):
        with pytest.raises((ValueError, ValidationError)):
            SyncJobPayload.from_scope(scope)

    def test_scope_label(self):
        assert SyncJobPayload.from_scope("creator:7").scope_label == "creator:7"
        assert SyncJobPayload.from_scope("all").scope_label == "all"

    def test_entity_required(self):
        with pytest.raises(ValidationError):
            SyncJobPayload(scope_type="band")

    def test_all_drops_entity(self):
        assert SyncJobPayload(scope_type="all", entity_id=4).entity_id is None

    def test_defaults(self):
        payload = SyncJobPayload()
        assert payload.mode == SyncMode.INCREMENTAL
        assert payload.force is False
        assert payload.triggered_by == "scheduler"


class TestParseJobPayload:
    def test_round_trips_through_json(self):
        payload = SyncJobPayload.from_scope("band:3", mode=SyncMode.FULL, force=True, sync_job_id=11)
        parsed = parse_job_payload(payload.model_dump(mode="json"))
        assert parsed == payload

    def test_selects_model_by_kind(self):
        assert isinstance(parse_job_payload({"kind": "promote"}), PromotionJobPayload)
        assert isinstance(parse_job_payload({"kind": "cleanup", "scope": "deleted"}), CleanupJobPayload)

    def test_match_payload(self):
        parsed = parse_job_payload({"kind": "match", "after_id": 12})
        assert isinstance(parsed, MatchJobPayload)
        assert parsed.after_id == 12
        assert parsed.limit is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_job_payload({"kind": "transcode"})

    def test_unknown_cleanup_scope(self):
        with pytest.raises(ValidationError):
            parse_job_payload({"kind": "cleanup", "scope": "everything"})
