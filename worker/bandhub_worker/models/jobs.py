"""Typed job payloads.

Each job kind carries its own payload model. Messages on the queue are the
JSON form of one of these models; ``parse_job_payload`` picks the model by
its ``kind`` tag.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from ..catalog.sync_jobs import SyncMode

ScopeType = Literal["band", "creator", "all"]
CleanupScope = Literal["duplicates", "irrelevant", "deleted", "all"]


class SyncJobPayload(BaseModel):
    kind: Literal["sync"] = "sync"
    scope_type: ScopeType = "all"
    entity_id: int | None = None
    mode: SyncMode = SyncMode.INCREMENTAL
    force: bool = False
    sync_job_id: int | None = None
    triggered_by: str = "scheduler"

    @model_validator(mode="after")
    def _check_entity(self) -> SyncJobPayload:
        if self.scope_type == "all":
            self.entity_id = None
        elif self.entity_id is None:
            raise ValueError(f"entity_id is required for scope_type={self.scope_type}")
        return self

    @property
    def scope_label(self) -> str:
        if self.scope_type == "all":
            return "all"
        return f"{self.scope_type}:{self.entity_id}"

    @classmethod
    def from_scope(cls, scope: str | int, **kwargs) -> SyncJobPayload:
        """Build a payload from ``"all"``, ``"band:3"``, ``"creator:7"`` or a band id."""
        if isinstance(scope, int):
            return cls(scope_type="band", entity_id=scope, **kwargs)
        text = scope.strip().lower()
        if text == "all":
            return cls(scope_type="all", **kwargs)
        if ":" in text:
            scope_type, _, raw_id = text.partition(":")
        else:
            scope_type, raw_id = "band", text
        if not raw_id.isdigit():
            raise ValueError(f"Invalid sync scope: {scope!r}")
        return cls(scope_type=scope_type, entity_id=int(raw_id), **kwargs)


class PromotionJobPayload(BaseModel):
    kind: Literal["promote"] = "promote"
    # None means "any eligible video"
    external_ids: list[str] | None = None
    limit: int | None = None


class CleanupJobPayload(BaseModel):
    kind: Literal["cleanup"] = "cleanup"
    scope: CleanupScope = "all"
    dry_run: bool = False


class MatchJobPayload(BaseModel):
    """Re-run the matcher over unmatched raw videos, in id order."""

    kind: Literal["match"] = "match"
    # Resume after this raw video id; None starts from the beginning
    after_id: int | None = None
    limit: int | None = None


JobPayload = Annotated[
    Union[SyncJobPayload, PromotionJobPayload, CleanupJobPayload, MatchJobPayload],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(JobPayload)


def parse_job_payload(
    data: dict,
) -> SyncJobPayload | PromotionJobPayload | CleanupJobPayload | MatchJobPayload:
    return _payload_adapter.validate_python(data)
