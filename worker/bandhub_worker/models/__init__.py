"""Typed models shared by the client, services and jobs."""

from .jobs import (
    CleanupJobPayload,
    JobPayload,
    MatchJobPayload,
    PromotionJobPayload,
    SyncJobPayload,
    parse_job_payload,
)
from .schemas import VideoMetadata, VideoPage

__all__ = [
    "VideoMetadata",
    "VideoPage",
    "SyncJobPayload",
    "PromotionJobPayload",
    "CleanupJobPayload",
    "MatchJobPayload",
    "JobPayload",
    "parse_job_payload",
]
