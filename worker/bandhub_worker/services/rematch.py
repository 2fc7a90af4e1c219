"""Re-run band matching over raw videos that are still unmatched.

Ingestion matches a video once, when it is first seen. Patterns, aliases
and event entries added later only reach the backlog through this sweep.
Matching is deterministic, so running it twice over the same rows gives
the same answer; a row that still has no match is left unmatched.

The sweep walks unmatched rows in id order, one bounded batch per job.
``last_id`` lets the caller resume where a full batch stopped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import db_models
from ..logging import logger
from ..matching import BandMatcher, build_matcher
from ..metrics import videos_rematched_total
from .ingestion import SyncTarget, apply_match


@dataclass
class RematchResult:
    examined: int = 0
    matched: int = 0
    unmatched: int = 0
    failed: int = 0
    last_id: int | None = None
    has_more: bool = False
    matched_external_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "matched": self.matched,
            "unmatched": self.unmatched,
            "failed": self.failed,
            "last_id": self.last_id,
            "has_more": self.has_more,
        }


def _batch_size(limit: int | None) -> int:
    cap = settings.pipeline_config.rematch_batch_max
    return min(limit or cap, cap)


def select_unmatched_batch(
    session: Session,
    after_id: int | None = None,
    limit: int | None = None,
) -> list:
    RawVideo = db_models.RawVideo
    stmt = (
        select(RawVideo)
        .where(
            RawVideo.matched_band_id.is_(None),
            RawVideo.is_promoted.is_(False),
        )
        .order_by(RawVideo.id)
        .limit(_batch_size(limit))
    )
    if after_id is not None:
        stmt = stmt.where(RawVideo.id > after_id)
    return list(session.scalars(stmt).all())


def _channel_targets(session: Session) -> dict[str, SyncTarget]:
    """Official band channels, keyed by channel id."""
    Band = db_models.Band
    bands = session.scalars(
        select(Band).where(Band.youtube_channel_id.isnot(None)).order_by(Band.id)
    ).all()
    targets: dict[str, SyncTarget] = {}
    for band in bands:
        targets.setdefault(
            band.youtube_channel_id,
            SyncTarget(
                kind="band",
                id=band.id,
                name=band.name,
                channel_id=band.youtube_channel_id,
                last_sync_at=None,
            ),
        )
    return targets


def _is_trusted(session: Session, raw, target: SyncTarget | None) -> bool:
    if raw.channel_id and raw.channel_id in settings.pipeline_config.trusted_channel_ids:
        return True
    if target is not None:
        return True
    if raw.creator_id is None:
        return False
    creator = session.get(db_models.ContentCreator, raw.creator_id)
    return bool(creator and creator.is_verified)


def rematch_videos(
    session: Session,
    after_id: int | None = None,
    limit: int | None = None,
    matcher: BandMatcher | None = None,
) -> RematchResult:
    """Match one batch of unmatched raw videos against the current tables."""
    matcher = matcher or build_matcher(session)
    batch = select_unmatched_batch(session, after_id=after_id, limit=limit)
    channel_targets = _channel_targets(session)
    result = RematchResult(has_more=len(batch) >= _batch_size(limit))
    logger.info("rematch_batch_started", candidates=len(batch), after_id=after_id)

    for raw in batch:
        raw_id = raw.id
        external_id = raw.external_id
        result.examined += 1
        result.last_id = raw_id
        target = channel_targets.get(raw.channel_id) if raw.channel_id else None
        try:
            with session.begin_nested():
                apply_match(session, raw, matcher, target, trusted=_is_trusted(session, raw, target))
                session.flush()
        except Exception as exc:
            result.failed += 1
            videos_rematched_total.labels(result="failed").inc()
            logger.warning("rematch_failed", external_id=external_id, error=str(exc))
            continue

        if raw.matched_band_id is not None:
            result.matched += 1
            result.matched_external_ids.append(external_id)
            videos_rematched_total.labels(result="matched").inc()
            logger.debug("rematch_matched", external_id=external_id, band_id=raw.matched_band_id)
        else:
            result.unmatched += 1
            videos_rematched_total.labels(result="unmatched").inc()

    logger.info("rematch_batch_complete", **result.as_dict())
    return result
