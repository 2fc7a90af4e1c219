"""Additive quality heuristic for raw videos.

Produces an integer in [0, 100]. Signals:
    - view count, log scaled (up to 40)
    - like-to-view ratio (up to 20)
    - title specificity: matched band, opponent, event keyword (up to 30)
    - plausible performance length (up to 10)
Videos from trusted channels never score below ``TRUSTED_CHANNEL_FLOOR``.
"""

from __future__ import annotations

import math
import re
from typing import Protocol

MIN_SCORE = 0
MAX_SCORE = 100
TRUSTED_CHANNEL_FLOOR = 70

EVENT_KEYWORDS = re.compile(
    r"\b(halftime|half time|5th quarter|fifth quarter|zero quarter|battle|homecoming|"
    r"field show|parade|stand tune|classic|marching in|band review)\b"
)

LIKE_RATIO_TIERS = (
    (0.04, 20),
    (0.02, 12),
    (0.01, 6),
)


class ScorableVideo(Protocol):
    title: str
    view_count: int
    like_count: int
    duration_seconds: int


def _view_points(views: int) -> int:
    if views <= 0:
        return 0
    return min(40, round(8 * math.log10(views)))


def _like_points(views: int, likes: int) -> int:
    if views <= 0 or likes <= 0:
        return 0
    ratio = likes / views
    for threshold, points in LIKE_RATIO_TIERS:
        if ratio >= threshold:
            return points
    return 0


def _duration_points(seconds: int) -> int:
    if 60 <= seconds <= 3 * 3600:
        return 10
    if 0 < seconds < 60:
        return 2
    return 0


def compute_quality_score(
    video: ScorableVideo,
    matched: bool = False,
    has_opponent: bool = False,
    trusted_channel: bool = False,
) -> int:
    score = _view_points(video.view_count or 0)
    score += _like_points(video.view_count or 0, video.like_count or 0)
    if matched:
        score += 15
    if has_opponent:
        score += 5
    if EVENT_KEYWORDS.search((video.title or "").lower()):
        score += 10
    score += _duration_points(video.duration_seconds or 0)
    if trusted_channel:
        score = max(score, TRUSTED_CHANNEL_FLOOR)
    return max(MIN_SCORE, min(MAX_SCORE, int(score)))
