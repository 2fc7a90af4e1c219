"""ORM models for the video catalog tables."""

from .bands import Band, ContentCreator
from .base import Base, JSONType
from .sync_jobs import SyncJobRecord, SyncJobStatus, SyncMode
from .videos import HideReason, PublishedVideo, RawVideo, SyncStatus, VideoCategory

__all__ = [
    "Base",
    "JSONType",
    "Band",
    "ContentCreator",
    "RawVideo",
    "PublishedVideo",
    "SyncJobRecord",
    "SyncJobStatus",
    "SyncMode",
    "SyncStatus",
    "HideReason",
    "VideoCategory",
]
