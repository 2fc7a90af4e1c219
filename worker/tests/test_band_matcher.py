"""Tests for matching/band_matcher.py module."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from bandhub_worker.catalog import Band
from bandhub_worker.matching import BandMatcher, build_matcher, resolve_band, slugify
from bandhub_worker.matching.patterns import (
    DEFAULT_BAND_PATTERNS,
    alias_patterns,
    compile_events,
    compile_patterns,
    load_pattern_table,
)


@pytest.fixture
def matcher():
    return BandMatcher(compile_patterns(DEFAULT_BAND_PATTERNS))


class TestSlugify:
    def test_basic(self):
        assert slugify("Southern University Human Jukebox") == "southern-university-human-jukebox"

    def test_strips_punctuation(self):
        assert slugify("Florida A&M  Marching 100!") == "florida-am-marching-100"


class TestBandMatcher:
    def test_matches_title(self, matcher):
        result = matcher.match("Human Jukebox 5th Quarter 2026")
        assert result.band_name == "Southern University Human Jukebox"
        assert result.school_name == "Southern University"
        assert result.opponent_name is None

    def test_first_pattern_wins(self, matcher):
        # Both bands are named but there is no battle keyword
        result = matcher.match("Jackson State and Southern University halftime")
        assert result.band_name == "Southern University Human Jukebox"
        assert result.opponent_name is None

    def test_detects_opponent_in_battle(self, matcher):
        result = matcher.match("Southern University vs Jackson State 2023 Halftime")
        assert result.band_name == "Southern University Human Jukebox"
        assert result.opponent_name == "Jackson State Sonic Boom"
        assert result.opponent_school == "Jackson State University"

    def test_battle_without_second_band(self, matcher):
        result = matcher.match("Sonic Boom battle of the bands")
        assert result.band_name == "Jackson State Sonic Boom"
        assert result.opponent_name is None

    def test_description_fallback(self, matcher):
        result = matcher.match("Amazing halftime show!", "The Marching 100 at homecoming")
        assert result.band_name == "Florida A&M Marching 100"

    def test_description_fallback_disabled(self):
        strict = BandMatcher(compile_patterns(DEFAULT_BAND_PATTERNS), match_description=False)
        assert strict.match("Amazing halftime show!", "The Marching 100 at homecoming") is None

    def test_title_takes_precedence_over_description(self, matcher):
        result = matcher.match("Sonic Boom stand tunes", "Southern University fans loved it")
        assert result.band_name == "Jackson State Sonic Boom"

    def test_exclusion(self, matcher):
        assert matcher.match("Southern University Lab High School band") is None

    def test_no_match(self, matcher):
        assert matcher.match("Drum corps finals 2026") is None

    def test_empty_title(self, matcher):
        assert matcher.match("") is None

    def test_deterministic(self, matcher):
        title = "Southern University vs Jackson State 2023 Halftime"
        first = matcher.match(title, "desc")
        for _ in range(5):
            assert matcher.match(title, "desc") == first


class TestEventParticipants:
    def test_event_alone_names_both_bands(self, matcher):
        result = matcher.match("Bayou Classic 2025 Battle of the Bands FULL")
        assert result.band_name == "Southern University Human Jukebox"
        assert result.opponent_name == "Grambling State Tiger Marching Band"
        assert result.opponent_school == "Grambling State University"

    def test_event_supplies_opponent_for_named_band(self, matcher):
        result = matcher.match("Grambling at the Bayou Classic halftime")
        assert result.band_name == "Grambling State Tiger Marching Band"
        assert result.opponent_name == "Southern University Human Jukebox"

    def test_named_band_outside_event_keeps_no_opponent(self, matcher):
        result = matcher.match("Sonic Boom visits the Florida Classic")
        assert result.band_name == "Jackson State Sonic Boom"
        assert result.opponent_name is None

    def test_event_in_description(self, matcher):
        result = matcher.match("What a game!", "Highlights from the Magic City Classic")
        assert result.band_name == "Alabama State Mighty Marching Hornets"
        assert result.opponent_name == "Alabama A&M Marching Maroon and White"

    def test_event_with_unknown_participants_is_ignored(self):
        southern_only = BandMatcher(compile_patterns(DEFAULT_BAND_PATTERNS[:1]))
        assert southern_only.match("Bayou Classic 2025") is None

    def test_custom_event_table(self):
        matcher = BandMatcher(
            compile_patterns(DEFAULT_BAND_PATTERNS),
            events=compile_events([(r"\bboombox classic\b", "Jackson State Sonic Boom", "Texas Southern Ocean of Soul")]),
        )
        result = matcher.match("BoomBox Classic 2024")
        assert result.band_name == "Jackson State Sonic Boom"
        assert result.opponent_name == "Texas Southern Ocean of Soul"
        assert matcher.match("Bayou Classic 2025") is None

    def test_high_school_event_excluded(self, matcher):
        assert matcher.match("Bayou Classic high school exhibition") is None

    def test_named_battle_opponent_wins_over_event(self, matcher):
        result = matcher.match("Southern University vs Jackson State at the Bayou Classic")
        assert result.opponent_name == "Jackson State Sonic Boom"

    def test_same_text_same_result(self, matcher):
        title = "Bayou Classic 2025 stand tunes"
        assert matcher.match(title) == matcher.match(title)


class TestPatternTables:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "patterns.json"
        path.write_text(json.dumps([{"pattern": "purple marching machine", "name": "Miles College Purple Marching Machine"}]))
        patterns = load_pattern_table(str(path))
        assert len(patterns) == 1
        assert patterns[0].school_name == "Miles College Purple Marching Machine"

    def test_default_table_without_path(self):
        assert len(load_pattern_table(None)) == len(DEFAULT_BAND_PATTERNS)

    def test_alias_patterns_whole_word(self):
        band = MagicMock(aliases=["SU"], school_name="Southern University")
        band.name = "Southern University Human Jukebox"
        patterns = alias_patterns([band])
        matcher = BandMatcher(patterns)
        assert matcher.match("SU at the classic").band_name == "Southern University Human Jukebox"
        assert matcher.match("Sunday parade") is None


class TestBuildMatcher:
    def test_includes_db_aliases(self, db_session):
        db_session.add(
            Band(
                name="Miles College Purple Marching Machine",
                slug="miles-college-purple-marching-machine",
                school_name="Miles College",
                aliases=["purple marching machine"],
            )
        )
        db_session.flush()
        matcher = build_matcher(db_session)
        result = matcher.match("Purple Marching Machine halftime")
        assert result.band_name == "Miles College Purple Marching Machine"


class TestResolveBand:
    def test_returns_existing_by_slug(self, db_session):
        band = Band(name="Southern University Human Jukebox", slug="southern-university-human-jukebox", school_name="Southern University")
        db_session.add(band)
        db_session.flush()
        assert resolve_band(db_session, "Southern University Human Jukebox").id == band.id

    def test_returns_existing_by_name_case_insensitive(self, db_session):
        band = Band(name="Sonic Boom of the South", slug="jsu-sonic-boom", school_name="Jackson State University")
        db_session.add(band)
        db_session.flush()
        assert resolve_band(db_session, "sonic boom of the south").id == band.id

    def test_creates_stub(self, db_session):
        band = resolve_band(db_session, "Jackson State Sonic Boom", "Jackson State University")
        assert band.id is not None
        assert band.slug == "jackson-state-sonic-boom"
        assert band.school_name == "Jackson State University"
        assert band.city == "To Be Updated"
        assert band.state == "To Be Updated"
        assert db_session.scalars(select(Band)).all() == [band]

    def test_second_call_reuses_stub(self, db_session):
        first = resolve_band(db_session, "Jackson State Sonic Boom")
        second = resolve_band(db_session, "Jackson State Sonic Boom")
        assert first.id == second.id

    def test_concurrent_insert_rereads_winner(self, db_session, monkeypatch):
        winner = Band(name="Jackson State Sonic Boom", slug="jackson-state-sonic-boom", school_name="Jackson State University")
        lookups = iter([None])
        real_scalars = db_session.scalars

        def scalars(stmt, *args, **kwargs):
            # First lookup misses, as if the other worker had not committed yet
            result = real_scalars(stmt, *args, **kwargs)
            if next(lookups, "done") is None:
                db_session.add(winner)
                db_session.flush()
                return MagicMock(first=MagicMock(return_value=None))
            return result

        monkeypatch.setattr(db_session, "scalars", scalars)
        band = resolve_band(db_session, "Jackson State Sonic Boom")
        assert band.id == winner.id
