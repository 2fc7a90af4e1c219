"""Maintenance worker: catalog hygiene sweeps.

Scopes:
    duplicates  remove all but the earliest-created video per
                (normalized title, channel)
    irrelevant  hide published videos below the quality threshold
    deleted     hide published videos not updated within the staleness
                window (a proxy for "removed at the source")
    all         the three above, in that order

Every scope honours ``dry_run``: the same selection runs and only the
count is reported. Scopes in an ``all`` run execute in separate savepoints
so one failing scope does not block the others.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Callable

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..config import settings
from ..db import db_models
from ..logging import logger
from ..metrics import maintenance_rows_total
from ..utils.datetime_utils import now_utc

SCOPES = ("duplicates", "irrelevant", "deleted")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass
class CleanupResult:
    scope: str
    dry_run: bool
    duplicates_removed: int = 0
    irrelevant_hidden: int = 0
    stale_hidden: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_title(title: str | None) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    return _NON_ALNUM.sub(" ", (title or "").lower()).strip()


def _duplicate_key(title: str | None, channel_id: str | None) -> tuple[str, str]:
    return normalize_title(title), channel_id or ""


def find_duplicates(session: Session) -> tuple[list[int], list[str], list[int]]:
    """Return (published ids, their external ids, raw-only ids) to remove.

    The earliest-created row of each group survives. A removed published
    video takes its raw row with it so the raw table never claims a
    promotion that no longer exists.
    """
    PublishedVideo = db_models.PublishedVideo
    RawVideo = db_models.RawVideo

    seen: set[tuple[str, str]] = set()
    published_ids: list[int] = []
    published_external_ids: list[str] = []
    rows = session.execute(
        select(PublishedVideo.id, PublishedVideo.external_id, PublishedVideo.title, PublishedVideo.channel_id)
        .order_by(PublishedVideo.created_at, PublishedVideo.id)
    ).all()
    for row in rows:
        key = _duplicate_key(row.title, row.channel_id)
        if key in seen:
            published_ids.append(row.id)
            published_external_ids.append(row.external_id)
        else:
            seen.add(key)

    seen = set()
    raw_ids: list[int] = []
    rows = session.execute(
        select(RawVideo.id, RawVideo.title, RawVideo.channel_id, RawVideo.is_promoted)
        .order_by(RawVideo.created_at, RawVideo.id)
    ).all()
    for row in rows:
        key = _duplicate_key(row.title, row.channel_id)
        if key in seen and not row.is_promoted:
            raw_ids.append(row.id)
        else:
            seen.add(key)

    return published_ids, published_external_ids, raw_ids


def remove_duplicates(session: Session, dry_run: bool) -> tuple[int, set[int]]:
    """Returns (rows removed or to remove, published ids involved)."""
    published_ids, external_ids, raw_ids = find_duplicates(session)
    count = len(published_ids) + len(raw_ids)
    if dry_run or not count:
        return count, set(published_ids)

    PublishedVideo = db_models.PublishedVideo
    RawVideo = db_models.RawVideo
    if published_ids:
        session.execute(
            delete(PublishedVideo).where(PublishedVideo.id.in_(published_ids)),
            execution_options={"synchronize_session": False},
        )
        session.execute(
            delete(RawVideo).where(RawVideo.external_id.in_(external_ids)),
            execution_options={"synchronize_session": False},
        )
    if raw_ids:
        session.execute(
            delete(RawVideo).where(RawVideo.id.in_(raw_ids)),
            execution_options={"synchronize_session": False},
        )
    return count, set(published_ids)


def _hide(
    session: Session,
    conditions: list,
    reason: str,
    dry_run: bool,
) -> int:
    PublishedVideo = db_models.PublishedVideo
    if dry_run:
        return session.scalar(select(func.count(PublishedVideo.id)).where(*conditions)) or 0
    result = session.execute(
        update(PublishedVideo)
        .where(*conditions)
        .values(is_hidden=True, hide_reason=reason),
        execution_options={"synchronize_session": False},
    )
    return result.rowcount or 0


def hide_low_quality(session: Session, dry_run: bool, exclude_ids: set[int] | None = None) -> int:
    PublishedVideo = db_models.PublishedVideo
    conditions = [
        PublishedVideo.is_hidden.is_(False),
        PublishedVideo.quality_score < settings.pipeline_config.low_quality_threshold,
    ]
    if exclude_ids:
        conditions.append(PublishedVideo.id.notin_(sorted(exclude_ids)))
    return _hide(session, conditions, db_models.HideReason.LOW_QUALITY.value, dry_run)


def hide_stale(
    session: Session,
    dry_run: bool,
    exclude_ids: set[int] | None = None,
    skip_low_quality: bool = False,
) -> int:
    PublishedVideo = db_models.PublishedVideo
    cfg = settings.pipeline_config
    threshold = now_utc() - timedelta(days=cfg.staleness_days)
    conditions = [
        PublishedVideo.is_hidden.is_(False),
        PublishedVideo.updated_at < threshold,
    ]
    if exclude_ids:
        conditions.append(PublishedVideo.id.notin_(sorted(exclude_ids)))
    if skip_low_quality:
        # Already claimed by the irrelevant scope earlier in this run
        conditions.append(PublishedVideo.quality_score >= cfg.low_quality_threshold)
    return _hide(session, conditions, db_models.HideReason.STALE.value, dry_run)


def run_cleanup(
    session: Session,
    scope: str = "all",
    dry_run: bool = False,
    progress: Callable[[int, dict[str, Any]], None] | None = None,
) -> CleanupResult:
    """Run one or all maintenance scopes and report counts per scope."""
    if scope != "all" and scope not in SCOPES:
        raise ValueError(f"Unknown cleanup scope: {scope}")
    scopes = SCOPES if scope == "all" else (scope,)
    result = CleanupResult(scope=scope, dry_run=dry_run)
    removed_ids: set[int] = set()

    logger.info("maintenance_started", scope=scope, dry_run=dry_run)
    for index, name in enumerate(scopes, start=1):
        try:
            with session.begin_nested():
                if name == "duplicates":
                    result.duplicates_removed, removed_ids = remove_duplicates(session, dry_run)
                    count = result.duplicates_removed
                elif name == "irrelevant":
                    result.irrelevant_hidden = hide_low_quality(session, dry_run, removed_ids)
                    count = result.irrelevant_hidden
                else:
                    result.stale_hidden = hide_stale(
                        session,
                        dry_run,
                        removed_ids,
                        skip_low_quality="irrelevant" in scopes and "irrelevant" not in result.errors,
                    )
                    count = result.stale_hidden
        except Exception as exc:
            logger.exception("maintenance_scope_failed", scope=name, error=str(exc))
            result.errors[name] = str(exc)
            count = 0

        if count and not dry_run:
            maintenance_rows_total.labels(scope=name).inc(count)
        logger.info("maintenance_scope_complete", scope=name, affected=count, dry_run=dry_run)
        if progress:
            progress(int(index * 100 / len(scopes)), result.as_dict())

    logger.info("maintenance_complete", **result.as_dict())
    return result
