"""Band matching, quality scoring and categorization for raw videos."""

from .band_matcher import BandMatcher, MatchResult, build_matcher, resolve_band, slugify
from .categories import categorize
from .quality import compute_quality_score

__all__ = [
    "BandMatcher",
    "MatchResult",
    "build_matcher",
    "resolve_band",
    "slugify",
    "categorize",
    "compute_quality_score",
]
