"""Catalog category assignment from title and description keywords."""

from __future__ import annotations

import re

from ..catalog.videos import VideoCategory

DEFAULT_CATEGORY = VideoCategory.PERFORMANCE

# First match wins; fifth quarter sits above the broader stand tunes rule
CATEGORY_RULES: list[tuple[VideoCategory, re.Pattern[str]]] = [
    (VideoCategory.BATTLE, re.compile(r"\b(vs|versus|battle|botb|showdown|face\s*off)\b")),
    (VideoCategory.FIFTH_QUARTER, re.compile(r"\b(5th\s*quarter|fifth\s*quarter)\b")),
    (VideoCategory.HALFTIME, re.compile(r"\b(halftime|half\s*time|half-time)\b")),
    (VideoCategory.PARADE, re.compile(r"\b(parade|mardi\s*gras|homecoming\s*parade)\b")),
    (VideoCategory.STAND_TUNES, re.compile(r"\b(stand\s*tunes?|stands|in\s*the\s*stands)\b")),
    (VideoCategory.PRACTICE, re.compile(r"\b(practice|rehearsal|sectional|camp|clinic)\b")),
    (VideoCategory.DOCUMENTARY, re.compile(r"\b(documentary|behind\s*the\s*scenes|interview|story|history)\b")),
]


def categorize(title: str, description: str | None = None) -> str:
    text = f"{title} {description or ''}".lower()
    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category.value
    return DEFAULT_CATEGORY.value
