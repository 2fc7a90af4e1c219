"""Promotion worker: copy matched raw videos into the public catalog.

Per video: UNMATCHED -> MATCHED -> PROMOTED, or MATCHED -> SKIPPED when a
published row with the same external id already exists. Inserting the
published row and flagging the raw row happen in one savepoint; the
unique external id on ``videos`` is what keeps two workers from both
promoting the same video.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import db_models
from ..logging import logger
from ..matching import categorize
from ..metrics import videos_promoted_total
from ..utils.datetime_utils import now_utc

PROMOTED = "promoted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class PromotionResult:
    promoted: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def select_promotion_batch(
    session: Session,
    external_ids: list[str] | None = None,
    limit: int | None = None,
) -> list:
    """Matched, unpromoted raw videos above the quality floor, newest first."""
    RawVideo = db_models.RawVideo
    cfg = settings.pipeline_config
    batch_size = min(limit or cfg.promotion_batch_max, cfg.promotion_batch_max)

    stmt = (
        select(RawVideo)
        .where(
            RawVideo.matched_band_id.isnot(None),
            RawVideo.is_promoted.is_(False),
            RawVideo.quality_score >= cfg.promotion_min_quality,
        )
        .order_by(RawVideo.published_at.desc(), RawVideo.id.desc())
        .limit(batch_size)
    )
    if external_ids:
        stmt = stmt.where(RawVideo.external_id.in_(external_ids))
    return list(session.scalars(stmt).all())


def _published_exists(session: Session, external_id: str) -> bool:
    PublishedVideo = db_models.PublishedVideo
    return session.scalars(
        select(PublishedVideo.id).where(PublishedVideo.external_id == external_id)
    ).first() is not None


def _mark_promoted(session: Session, raw) -> None:
    with session.begin_nested():
        raw.is_promoted = True
        raw.promoted_at = raw.promoted_at or now_utc()
        session.flush()


def promote_video(session: Session, raw) -> str:
    """Promote one raw video. Returns ``PROMOTED`` or ``SKIPPED``."""
    if _published_exists(session, raw.external_id):
        _mark_promoted(session, raw)
        return SKIPPED

    published = db_models.PublishedVideo(
        external_id=raw.external_id,
        title=raw.title,
        description=raw.description,
        channel_id=raw.channel_id,
        channel_title=raw.channel_title,
        thumbnail_url=raw.thumbnail_url,
        duration_seconds=raw.duration_seconds,
        published_at=raw.published_at,
        view_count=raw.view_count,
        like_count=raw.like_count,
        quality_score=raw.quality_score,
        band_id=raw.matched_band_id,
        opponent_band_id=raw.opponent_band_id,
        category=categorize(raw.title, raw.description),
        is_hidden=False,
    )
    try:
        with session.begin_nested():
            session.add(published)
            raw.is_promoted = True
            raw.promoted_at = now_utc()
            session.flush()
    except IntegrityError:
        # Another worker promoted it between our check and insert
        if not _published_exists(session, raw.external_id):
            raise
        logger.info("promotion_race_reconciled", external_id=raw.external_id)
        _mark_promoted(session, raw)
        return SKIPPED
    return PROMOTED


def promote_videos(
    session: Session,
    external_ids: list[str] | None = None,
    limit: int | None = None,
) -> PromotionResult:
    """Promote one bounded batch. Remaining videos wait for the next run."""
    result = PromotionResult()
    batch = select_promotion_batch(session, external_ids=external_ids, limit=limit)
    logger.info("promotion_batch_started", candidates=len(batch), targeted=bool(external_ids))

    for raw in batch:
        external_id = raw.external_id
        try:
            outcome = promote_video(session, raw)
        except Exception as exc:
            result.failed += 1
            videos_promoted_total.labels(result=FAILED).inc()
            logger.warning("promotion_failed", external_id=external_id, error=str(exc))
            continue
        if outcome == PROMOTED:
            result.promoted += 1
        else:
            result.skipped += 1
        videos_promoted_total.labels(result=outcome).inc()

    logger.info("promotion_batch_complete", **result.as_dict())
    return result
