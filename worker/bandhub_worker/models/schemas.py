"""Pydantic models for platform video metadata."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class VideoMetadata(BaseModel):
    external_id: str
    title: str
    description: str | None = None
    channel_id: str | None = None
    channel_title: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: int = 0
    published_at: datetime | None = None
    view_count: int = 0
    like_count: int = 0


class VideoPage(BaseModel):
    """One page of results from a list endpoint, already hydrated."""

    items: list[VideoMetadata] = Field(default_factory=list)
    next_page_token: str | None = None
    # Set when an incremental walk reached items at or before the cursor
    reached_cursor: bool = False
    # Items the platform returned that could not be parsed
    invalid_items: list[dict] = Field(default_factory=list)
