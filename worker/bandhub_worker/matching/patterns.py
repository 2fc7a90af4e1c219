"""Pattern tables for band matching.

Order matters: the matcher scans top to bottom and the first hit wins, so
more specific entries sit above broader ones. The default table can be
replaced at deploy time with a JSON file (BAND_PATTERNS_FILE) holding a
list of ``{"pattern": ..., "name": ..., "school": ...}`` objects.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


@dataclass(frozen=True)
class BandPattern:
    pattern: re.Pattern[str]
    band_name: str
    school_name: str


# (regex, canonical band name, school name)
DEFAULT_BAND_PATTERNS: list[tuple[str, str, str]] = [
    (r"southern university|human jukebox", "Southern University Human Jukebox", "Southern University"),
    (r"jackson state|sonic boom", "Jackson State Sonic Boom", "Jackson State University"),
    (r"famu|marching 100|florida a&m", "Florida A&M Marching 100", "Florida A&M University"),
    (r"howard university|showtime marching", "Howard University Showtime", "Howard University"),
    (r"nc a&t|north carolina a&t|blue.*gold marching machine", "North Carolina A&T Blue and Gold Marching Machine", "North Carolina A&T State University"),
    (r"grambling|tiger marching band", "Grambling State Tiger Marching Band", "Grambling State University"),
    (r"prairie view|marching storm", "Prairie View A&M Marching Storm", "Prairie View A&M University"),
    (r"texas southern|ocean of soul", "Texas Southern Ocean of Soul", "Texas Southern University"),
    (r"tennessee state|aristocrat of bands", "Tennessee State Aristocrat of Bands", "Tennessee State University"),
    (r"alabama state|mighty marching hornets", "Alabama State Mighty Marching Hornets", "Alabama State University"),
    (r"alabama a&m|marching maroon", "Alabama A&M Marching Maroon and White", "Alabama A&M University"),
    (r"bethune[- ]cookman|marching wildcats", "Bethune-Cookman Marching Wildcats", "Bethune-Cookman University"),
    (r"morgan state|magnificent marching machine", "Morgan State Magnificent Marching Machine", "Morgan State University"),
    (r"norfolk state|spartan legion", "Norfolk State Spartan Legion", "Norfolk State University"),
]

# Titles matching these are never attributed to a college band
EXCLUSION_PATTERNS: list[str] = [
    r"\bhigh school\b",
    r"\bmiddle school\b",
    r"\bhs band\b",
]

BATTLE_PATTERN = re.compile(r"\b(vs\.?|v\.|versus|battle|botb|showdown|face\s*off)(?=\s|$)")

# Annual classics and the two bands that meet there, home side first.
# A title naming only the event is attributed to both participants.
DEFAULT_EVENT_PARTICIPANTS: list[tuple[str, str, str]] = [
    (r"\bbayou classic\b", "Southern University Human Jukebox", "Grambling State Tiger Marching Band"),
    (r"\bmagic city classic\b", "Alabama State Mighty Marching Hornets", "Alabama A&M Marching Maroon and White"),
    (r"\bflorida classic\b", "Florida A&M Marching 100", "Bethune-Cookman Marching Wildcats"),
]


@dataclass(frozen=True)
class EventPattern:
    pattern: re.Pattern[str]
    participants: tuple[str, str]


def compile_patterns(entries: Iterable[tuple[str, str, str]]) -> list[BandPattern]:
    return [
        BandPattern(re.compile(regex, re.IGNORECASE), name, school)
        for regex, name, school in entries
    ]


def load_pattern_table(path: str | None = None) -> list[BandPattern]:
    """Return the configured pattern table, or the built-in one."""
    if not path:
        return compile_patterns(DEFAULT_BAND_PATTERNS)
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return compile_patterns(
        (entry["pattern"], entry["name"], entry.get("school") or entry["name"])
        for entry in raw
    )


def alias_patterns(bands: Iterable) -> list[BandPattern]:
    """Whole-word patterns for the aliases stored on Band rows."""
    entries = []
    for band in bands:
        for alias in band.aliases or []:
            alias = alias.strip().lower()
            if alias:
                entries.append((rf"\b{re.escape(alias)}\b", band.name, band.school_name))
    return compile_patterns(entries)


def compile_events(entries: Iterable[tuple[str, str, str]] = DEFAULT_EVENT_PARTICIPANTS) -> list[EventPattern]:
    return [
        EventPattern(re.compile(regex, re.IGNORECASE), (first, second))
        for regex, first, second in entries
    ]
