"""Raw (ingested) and published (public catalog) video models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SyncStatus(str, Enum):
    """Ingestion state of a raw video row."""

    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class HideReason(str, Enum):
    LOW_QUALITY = "low_quality"
    STALE = "stale"


class VideoCategory(str, Enum):
    BATTLE = "BATTLE"
    FIFTH_QUARTER = "FIFTH_QUARTER"
    HALFTIME = "HALFTIME"
    PARADE = "PARADE"
    STAND_TUNES = "STAND_TUNES"
    PRACTICE = "PRACTICE"
    DOCUMENTARY = "DOCUMENTARY"
    PERFORMANCE = "PERFORMANCE"


class RawVideo(Base):
    """Video metadata as pulled from the platform, before promotion."""

    __tablename__ = "raw_videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    matched_band_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bands.id", ondelete="SET NULL"), nullable=True
    )
    opponent_band_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bands.id", ondelete="SET NULL"), nullable=True
    )
    quality_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_promoted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    promoted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sync_status: Mapped[str] = mapped_column(
        String(20), default=SyncStatus.PENDING.value, nullable=False
    )
    creator_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("content_creators.id", ondelete="SET NULL"), nullable=True
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_raw_videos_promotion", "matched_band_id", "is_promoted"),
        Index("idx_raw_videos_published", "published_at"),
        Index("idx_raw_videos_channel", "channel_id"),
    )


class PublishedVideo(Base):
    """Public catalog entry. Exactly one per promoted raw video."""

    __tablename__ = "videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    band_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bands.id", ondelete="CASCADE"), nullable=False, index=True
    )
    opponent_band_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bands.id", ondelete="SET NULL"), nullable=True
    )
    category: Mapped[str | None] = mapped_column(String(40), nullable=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_videos_hidden_quality", "is_hidden", "quality_score"),
        Index("idx_videos_updated", "updated_at"),
    )
