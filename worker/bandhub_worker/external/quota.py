"""Daily quota accounting for the YouTube Data API.

Every call site reports its estimated cost before the request is issued.
If the projected total would exceed the daily limit the call is rejected
locally with ``QuotaExceeded`` and nothing goes over the network.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Protocol

import redis

from ..logging import logger
from ..utils.datetime_utils import next_quota_reset, now_utc, quota_day
from .exceptions import QuotaExceeded

# Cost units per call, from the platform's published quota table
ENDPOINT_COSTS = {
    "search.list": 100,
    "videos.list": 1,
    "channels.list": 1,
    "playlistItems.list": 1,
}

# Alert level thresholds as a percentage of the daily limit
ALERT_THRESHOLDS = (
    (100.0, "DEPLETED"),
    (90.0, "CRITICAL"),
    (75.0, "WARNING"),
    (50.0, "INFO"),
)


def alert_level(percent_used: float) -> str:
    for threshold, level in ALERT_THRESHOLDS:
        if percent_used >= threshold:
            return level
    return "OK"


class QuotaStore(Protocol):
    def try_consume(self, day: date, cost: int, limit: int) -> tuple[bool, int]:
        """Atomically add ``cost`` if it fits. Returns (accepted, used)."""

    def used(self, day: date) -> int:
        ...

    def set_used(self, day: date, value: int) -> None:
        ...


class InMemoryQuotaStore:
    """Process-local counter for a single quota day."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._day: date | None = None
        self._used = 0

    def _roll(self, day: date) -> None:
        if self._day != day:
            self._day = day
            self._used = 0

    def try_consume(self, day: date, cost: int, limit: int) -> tuple[bool, int]:
        with self._lock:
            self._roll(day)
            if self._used + cost > limit:
                return False, self._used
            self._used += cost
            return True, self._used

    def used(self, day: date) -> int:
        with self._lock:
            self._roll(day)
            return self._used

    def set_used(self, day: date, value: int) -> None:
        with self._lock:
            self._roll(day)
            self._used = value


_CONSUME_SCRIPT = """
local used = tonumber(redis.call('GET', KEYS[1]) or '0')
local cost = tonumber(ARGV[1])
local limit = tonumber(ARGV[2])
if used + cost > limit then
    return {0, used}
end
used = redis.call('INCRBY', KEYS[1], cost)
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
return {1, used}
"""


class RedisQuotaStore:
    """Counter shared by every worker process, one key per quota day."""

    KEY_TTL_SECONDS = 2 * 86400

    def __init__(self, client: redis.Redis, key_prefix: str = "youtube:quota") -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._consume = client.register_script(_CONSUME_SCRIPT)

    def _key(self, day: date) -> str:
        return f"{self._key_prefix}:{day.isoformat()}"

    def try_consume(self, day: date, cost: int, limit: int) -> tuple[bool, int]:
        accepted, used = self._consume(
            keys=[self._key(day)], args=[cost, limit, self.KEY_TTL_SECONDS]
        )
        return bool(accepted), int(used)

    def used(self, day: date) -> int:
        return int(self._client.get(self._key(day)) or 0)

    def set_used(self, day: date, value: int) -> None:
        self._client.set(self._key(day), value, ex=self.KEY_TTL_SECONDS)


@dataclass
class QuotaSnapshot:
    day: date
    used: int
    limit: int
    remaining: int
    percent_used: float
    alert_level: str
    resets_at: datetime


class QuotaTracker:
    """Enforces the daily cost budget for one external dependency."""

    def __init__(
        self,
        daily_limit: int,
        store: QuotaStore | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.daily_limit = daily_limit
        self._store = store or InMemoryQuotaStore()
        self._clock = clock

    def consume(self, cost: int, endpoint: str) -> int:
        """Reserve ``cost`` units for a call to ``endpoint``.

        Returns the running total. Raises ``QuotaExceeded`` when the
        projected total would pass the daily limit.
        """
        moment = self._clock()
        accepted, used = self._store.try_consume(quota_day(moment), cost, self.daily_limit)
        if not accepted:
            retry_after = int((next_quota_reset(moment) - moment).total_seconds())
            logger.warning(
                "youtube_quota_exceeded",
                endpoint=endpoint,
                cost=cost,
                used=used,
                limit=self.daily_limit,
                retry_after_seconds=retry_after,
            )
            raise QuotaExceeded(
                f"Daily quota would be exceeded: {used} + {cost} > {self.daily_limit}",
                retry_after_seconds=retry_after,
            )
        return used

    def mark_exhausted(self) -> None:
        """Pin today's usage at the limit after the platform reports exhaustion."""
        self._store.set_used(quota_day(self._clock()), self.daily_limit)
        logger.warning("youtube_quota_marked_exhausted", limit=self.daily_limit)

    def snapshot(self) -> QuotaSnapshot:
        moment = self._clock()
        day = quota_day(moment)
        used = self._store.used(day)
        percent = round(used / self.daily_limit * 100, 2) if self.daily_limit else 100.0
        return QuotaSnapshot(
            day=day,
            used=used,
            limit=self.daily_limit,
            remaining=max(self.daily_limit - used, 0),
            percent_used=percent,
            alert_level=alert_level(percent),
            resets_at=next_quota_reset(moment),
        )
