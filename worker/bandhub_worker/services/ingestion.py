"""Ingestion worker: pull videos for bands and creators into raw_videos.

A run covers one band, one creator or every active band and creator. Each
page of results is written in its own transaction and each item in its
own savepoint, so one bad item never costs the page and an aborted run
keeps everything it already wrote.

Failure handling:
    - item failure (parse error, constraint violation): logged, recorded,
      skipped
    - TerminalCallFailure / exhausted transient retries: that entity is
      abandoned, the run continues
    - CircuitOpen / QuotaExceeded: the rest of the run is abandoned and
      the SyncJobRecord is marked FAILED

Sync cursors advance only when the run completes, and only for entities
that finished without call-level errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import db_models, get_session
from ..external import CircuitOpen, QuotaExceeded, TerminalCallFailure, TransientCallFailure
from ..external.youtube_client import YouTubeClient
from ..logging import logger
from ..matching import BandMatcher, build_matcher, compute_quality_score, resolve_band
from ..metrics import videos_synced_total
from ..models import SyncJobPayload, VideoMetadata, VideoPage
from ..utils.datetime_utils import ensure_utc, now_utc
from .sync_jobs import SyncJobTracker, activate_sync_job, complete_sync_job

SEARCH_QUERY_TEMPLATE = '"{name}" marching band'


@dataclass
class SyncTarget:
    """Detached snapshot of a band or creator to sync."""

    kind: str  # "band" or "creator"
    id: int
    name: str
    channel_id: str | None
    last_sync_at: datetime | None
    verified: bool = False

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.id}"


def _band_target(band) -> SyncTarget:
    return SyncTarget(
        kind="band",
        id=band.id,
        name=band.name,
        channel_id=band.youtube_channel_id,
        last_sync_at=ensure_utc(band.last_sync_at),
    )


def _creator_target(creator) -> SyncTarget:
    return SyncTarget(
        kind="creator",
        id=creator.id,
        name=creator.name,
        channel_id=creator.youtube_channel_id,
        last_sync_at=ensure_utc(creator.last_sync_at),
        verified=creator.is_verified,
    )


def load_sync_targets(session: Session, payload: SyncJobPayload) -> list[SyncTarget]:
    """Resolve the payload's scope to concrete bands and creators."""
    Band = db_models.Band
    ContentCreator = db_models.ContentCreator

    if payload.scope_type == "band":
        band = session.get(Band, payload.entity_id)
        return [_band_target(band)] if band else []
    if payload.scope_type == "creator":
        creator = session.get(ContentCreator, payload.entity_id)
        return [_creator_target(creator)] if creator else []

    bands = session.scalars(
        select(Band).where(Band.is_active.is_(True)).order_by(Band.id)
    ).all()
    creators = session.scalars(
        select(ContentCreator).where(ContentCreator.is_active.is_(True)).order_by(ContentCreator.id)
    ).all()
    return [_band_target(b) for b in bands] + [_creator_target(c) for c in creators]


def _recently_synced(target: SyncTarget, moment: datetime) -> bool:
    if not target.last_sync_at:
        return False
    min_interval = timedelta(minutes=settings.pipeline_config.sync_min_interval_minutes)
    return moment - target.last_sync_at < min_interval


def _iter_pages(
    client: YouTubeClient,
    target: SyncTarget,
    payload: SyncJobPayload,
) -> Iterator[VideoPage]:
    cfg = settings.pipeline_config
    incremental = payload.mode == db_models.SyncMode.INCREMENTAL
    cursor = target.last_sync_at if incremental else None

    if target.channel_id:
        return client.list_channel_videos(
            target.channel_id,
            published_after=cursor,
            max_pages=cfg.max_pages_per_entity,
        )
    # Search costs 100 units a page, keep incremental runs to one page
    return client.search_videos(
        SEARCH_QUERY_TEMPLATE.format(name=target.name),
        published_after=cursor,
        max_pages=1 if incremental and cursor else cfg.max_pages_per_entity,
    )


def _is_trusted(target: SyncTarget, video: VideoMetadata) -> bool:
    if video.channel_id and video.channel_id in settings.pipeline_config.trusted_channel_ids:
        return True
    if target.kind == "creator" and target.verified:
        return True
    return target.kind == "band" and bool(target.channel_id) and video.channel_id == target.channel_id


def apply_match(
    session: Session,
    raw,
    matcher: BandMatcher,
    target: SyncTarget | None = None,
    trusted: bool = False,
) -> None:
    """Set matched/opponent band ids and the quality score on a new raw video."""
    result = matcher.match(raw.title, raw.description)
    if result is not None:
        raw.matched_band_id = resolve_band(session, result.band_name, result.school_name).id
        if result.opponent_name:
            raw.opponent_band_id = resolve_band(session, result.opponent_name, result.opponent_school).id
    elif (
        target is not None
        and target.kind == "band"
        and target.channel_id
        and raw.channel_id == target.channel_id
    ):
        # Uploads on a band's own channel belong to that band
        raw.matched_band_id = target.id

    raw.quality_score = compute_quality_score(
        raw,
        matched=raw.matched_band_id is not None,
        has_opponent=raw.opponent_band_id is not None,
        trusted_channel=trusted,
    )


def ingest_video(
    session: Session,
    video: VideoMetadata,
    target: SyncTarget,
    matcher: BandMatcher,
    tracker: SyncJobTracker,
) -> None:
    """Upsert one platform video by external id."""
    RawVideo = db_models.RawVideo
    moment = now_utc()

    raw = session.scalars(
        select(RawVideo).where(RawVideo.external_id == video.external_id)
    ).first()

    if raw is not None:
        # Match state is left alone on updates
        raw.view_count = video.view_count
        raw.like_count = video.like_count
        if video.thumbnail_url:
            raw.thumbnail_url = video.thumbnail_url
        raw.sync_status = db_models.SyncStatus.SYNCED.value
        raw.last_synced_at = moment
        published = session.scalars(
            select(db_models.PublishedVideo).where(
                db_models.PublishedVideo.external_id == video.external_id
            )
        ).first()
        if published is not None:
            published.view_count = video.view_count
            published.like_count = video.like_count
            # Seen at the source again; keeps the staleness sweep from hiding it
            published.updated_at = moment
        session.flush()
        tracker.videos_updated += 1
        videos_synced_total.labels(result="updated").inc()
    else:
        raw = RawVideo(
            external_id=video.external_id,
            title=video.title,
            description=video.description,
            channel_id=video.channel_id,
            channel_title=video.channel_title,
            thumbnail_url=video.thumbnail_url,
            duration_seconds=video.duration_seconds,
            published_at=video.published_at,
            view_count=video.view_count,
            like_count=video.like_count,
            is_promoted=False,
            sync_status=db_models.SyncStatus.SYNCED.value,
            creator_id=target.id if target.kind == "creator" else None,
            last_synced_at=moment,
        )
        apply_match(session, raw, matcher, target, trusted=_is_trusted(target, video))
        session.add(raw)
        session.flush()
        tracker.videos_added += 1
        videos_synced_total.labels(result="added").inc()

    if raw.matched_band_id is not None and not raw.is_promoted:
        tracker.promotion_candidates.append(raw.external_id)


def ingest_page(
    session: Session,
    page: VideoPage,
    target: SyncTarget,
    matcher: BandMatcher,
    tracker: SyncJobTracker,
) -> None:
    tracker.videos_found += len(page.items) + len(page.invalid_items)

    for invalid in page.invalid_items:
        tracker.add_error(invalid["error"], entity=target.label, external_id=invalid.get("external_id"))
        videos_synced_total.labels(result="error").inc()

    for video in page.items:
        try:
            with session.begin_nested():
                ingest_video(session, video, target, matcher, tracker)
        except Exception as exc:
            logger.warning(
                "sync_item_failed",
                entity=target.label,
                external_id=video.external_id,
                error=str(exc),
            )
            tracker.add_error(str(exc), entity=target.label, external_id=video.external_id)
            videos_synced_total.labels(result="error").inc()


def sync_target(
    client: YouTubeClient,
    target: SyncTarget,
    payload: SyncJobPayload,
    matcher: BandMatcher,
    tracker: SyncJobTracker,
) -> None:
    """Walk every page for one entity, committing page by page."""
    logger.info("sync_target_started", entity=target.label, name=target.name, mode=payload.mode.value)
    pages = 0
    for page in _iter_pages(client, target, payload):
        with get_session() as session:
            ingest_page(session, page, target, matcher, tracker)
        pages += 1
    logger.info("sync_target_completed", entity=target.label, pages=pages)


def _advance_cursors(targets: list[SyncTarget], moment: datetime) -> None:
    if not targets:
        return
    with get_session() as session:
        for target in targets:
            model = db_models.Band if target.kind == "band" else db_models.ContentCreator
            row = session.get(model, target.id)
            if row is not None:
                row.last_sync_at = moment


def enqueue_promotion_candidates(
    candidates: list[str],
    enqueue: Callable[[str], Any] | None = None,
) -> int:
    if enqueue is None:
        from .scheduler import enqueue_promotion

        enqueue = enqueue_promotion
    submitted = 0
    for external_id in dict.fromkeys(candidates):
        try:
            if enqueue(external_id):
                submitted += 1
        except Exception as exc:
            # Scheduled promotion sweeps pick up anything missed here
            logger.warning("promotion_enqueue_failed", external_id=external_id, error=str(exc))
    return submitted


def run_sync(
    payload: SyncJobPayload,
    client: YouTubeClient | None = None,
    enqueue_promotion: Callable[[str], Any] | None = None,
    celery_task_id: str | None = None,
) -> dict[str, Any]:
    """Execute one sync job end to end and return its summary."""
    record_id = activate_sync_job(payload, celery_task_id)
    tracker = SyncJobTracker(record_id)
    run_started_at = now_utc()
    status = db_models.SyncJobStatus.COMPLETED.value
    failure_reason: str | None = None
    clean_targets: list[SyncTarget] = []

    try:
        client = client or YouTubeClient()
        with get_session() as session:
            targets = load_sync_targets(session, payload)
            matcher = build_matcher(session)

        if not targets and payload.scope_type != "all":
            status = db_models.SyncJobStatus.FAILED.value
            failure_reason = f"{payload.scope_label} not found"

        for target in targets:
            if not payload.force and _recently_synced(target, run_started_at):
                logger.info("sync_target_skipped_recent", entity=target.label)
                continue
            try:
                sync_target(client, target, payload, matcher, tracker)
            except (TerminalCallFailure, TransientCallFailure) as exc:
                logger.warning("sync_target_failed", entity=target.label, error=str(exc))
                tracker.add_error(str(exc), entity=target.label, kind=type(exc).__name__)
                continue
            clean_targets.append(target)
    except (CircuitOpen, QuotaExceeded) as exc:
        status = db_models.SyncJobStatus.FAILED.value
        failure_reason = f"{type(exc).__name__}: {exc}"
        logger.error("sync_job_aborted", sync_job_id=record_id, reason=failure_reason)
    except Exception as exc:
        tracker.quota_used = client.units_spent if client else 0
        complete_sync_job(tracker, db_models.SyncJobStatus.FAILED.value, failure_reason=str(exc)[:500])
        raise
    finally:
        if client is not None:
            tracker.quota_used = client.units_spent

    if status == db_models.SyncJobStatus.COMPLETED.value:
        _advance_cursors(clean_targets, run_started_at)

    complete_sync_job(tracker, status, failure_reason=failure_reason)
    promotions = enqueue_promotion_candidates(tracker.promotion_candidates, enqueue_promotion)

    return {
        "sync_job_id": record_id,
        "status": status,
        "failure_reason": failure_reason,
        "promotions_enqueued": promotions,
        **tracker.summary(),
    }
