"""
Low-level timezone and timestamp utilities.

Domain-agnostic helpers for timezone-aware UTC datetimes, the platform's
quota day, and ISO 8601 durations.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

# The platform's daily quota rolls over at midnight Pacific time
QUOTA_TIMEZONE = ZoneInfo("America/Los_Angeles")

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def now_utc() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on
    round-trip).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def quota_day(moment: datetime | None = None) -> date:
    """Return the quota calendar day that ``moment`` falls in."""
    moment = ensure_utc(moment) or now_utc()
    return moment.astimezone(QUOTA_TIMEZONE).date()


def next_quota_reset(moment: datetime | None = None) -> datetime:
    """Return the UTC instant at which the current quota day ends."""
    day = quota_day(moment)
    local_midnight = datetime.combine(day + timedelta(days=1), time.min, tzinfo=QUOTA_TIMEZONE)
    return local_midnight.astimezone(timezone.utc)


def parse_iso_duration(value: str | None) -> int:
    """Convert an ISO 8601 duration such as ``PT1H2M10S`` to seconds.

    Unparseable or missing values return 0.
    """
    if not value:
        return 0
    match = _ISO_DURATION.match(value.strip())
    if not match:
        return 0
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def parse_rfc3339(value: str | None) -> datetime | None:
    """Parse platform timestamps like ``2023-10-14T19:30:00Z``."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime the way the platform API expects."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
