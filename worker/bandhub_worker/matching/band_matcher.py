"""Heuristic mapping of raw video text to a canonical band.

``BandMatcher.match`` is pure: for a fixed pattern table the same title and
description always produce the same result, so re-running it over the
unmatched set never oscillates. ``resolve_band`` is the only part that
touches the database (slug lookup with create-if-absent).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..logging import logger
from .patterns import (
    BATTLE_PATTERN,
    EXCLUSION_PATTERNS,
    BandPattern,
    EventPattern,
    alias_patterns,
    compile_events,
    load_pattern_table,
)

PLACEHOLDER_LOCATION = "To Be Updated"


@dataclass(frozen=True)
class MatchResult:
    band_name: str
    school_name: str
    opponent_name: str | None = None
    opponent_school: str | None = None


def slugify(name: str) -> str:
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    return re.sub(r"-+", "-", slug)


class BandMatcher:
    """Linear scan over an ordered pattern table. First match wins."""

    def __init__(
        self,
        patterns: list[BandPattern],
        exclusions: Iterable[str] = EXCLUSION_PATTERNS,
        match_description: bool = True,
        events: list[EventPattern] | None = None,
    ) -> None:
        self.patterns = list(patterns)
        self.exclusions = [re.compile(p, re.IGNORECASE) for p in exclusions]
        self.match_description = match_description
        self.events = compile_events() if events is None else list(events)
        self._by_name: dict[str, BandPattern] = {}
        for entry in self.patterns:
            self._by_name.setdefault(entry.band_name, entry)

    def _first_match(self, text: str, skip_name: str | None = None) -> BandPattern | None:
        for entry in self.patterns:
            if entry.band_name == skip_name:
                continue
            if entry.pattern.search(text):
                return entry
        return None

    def _event_participants(self, text: str) -> tuple[BandPattern, BandPattern] | None:
        for event in self.events:
            if not event.pattern.search(text):
                continue
            first, second = (self._by_name.get(name) for name in event.participants)
            # Events naming bands outside the active table are ignored
            if first is not None and second is not None:
                return first, second
        return None

    def is_excluded(self, title: str) -> bool:
        lowered = title.lower()
        return any(p.search(lowered) for p in self.exclusions)

    def match(self, title: str, description: str | None = None) -> MatchResult | None:
        """Return the band a video belongs to, or None.

        The title is tried first; the description only when the title has
        no hit and description matching is enabled. A known event (the
        Bayou Classic, say) supplies both bands when none is named, and
        the opponent when only one of its participants is.
        """
        if not title or self.is_excluded(title):
            return None

        text = title.lower()
        primary = self._first_match(text)
        if primary is None and self.match_description and description:
            text = f"{text}\n{description.lower()}"
            primary = self._first_match(text)

        event = self._event_participants(text)
        if primary is None:
            if event is None:
                return None
            primary, opponent = event
        else:
            opponent = None
            if BATTLE_PATTERN.search(title.lower()):
                opponent = self._first_match(text, skip_name=primary.band_name)
            if opponent is None and event is not None:
                first, second = event
                if primary.band_name == first.band_name:
                    opponent = second
                elif primary.band_name == second.band_name:
                    opponent = first

        return MatchResult(
            band_name=primary.band_name,
            school_name=primary.school_name,
            opponent_name=opponent.band_name if opponent else None,
            opponent_school=opponent.school_name if opponent else None,
        )


def build_matcher(session: Session | None = None) -> BandMatcher:
    """Matcher from the configured table plus aliases stored on Band rows."""
    from ..config import settings
    from ..db import db_models

    cfg = settings.pipeline_config
    patterns = load_pattern_table(cfg.band_patterns_file)
    if session is not None:
        bands = session.scalars(
            select(db_models.Band).where(db_models.Band.is_active.is_(True)).order_by(db_models.Band.id)
        ).all()
        patterns.extend(alias_patterns(bands))
    return BandMatcher(patterns, match_description=cfg.match_description)


def resolve_band(session: Session, name: str, school_name: str | None = None):
    """Return the Band for ``name``, creating a stub if it is unknown.

    Safe under concurrent workers: a losing insert hits the unique slug
    constraint inside a savepoint and re-reads the winner's row.
    """
    from ..db import db_models

    slug = slugify(name)
    band = session.scalars(
        select(db_models.Band)
        .where(or_(db_models.Band.slug == slug, func.lower(db_models.Band.name) == name.lower()))
        .order_by(db_models.Band.id)
    ).first()
    if band is not None:
        return band

    stub = db_models.Band(
        name=name,
        slug=slug,
        school_name=school_name or name,
        city=PLACEHOLDER_LOCATION,
        state=PLACEHOLDER_LOCATION,
        aliases=[],
        is_active=True,
    )
    try:
        with session.begin_nested():
            session.add(stub)
            session.flush()
    except IntegrityError:
        logger.info("band_stub_race_resolved", slug=slug)
        return session.scalars(select(db_models.Band).where(db_models.Band.slug == slug)).one()

    logger.info("band_stub_created", band_id=stub.id, name=name, slug=slug)
    return stub
