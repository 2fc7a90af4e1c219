"""Single call path combining the circuit breaker, quota and call metrics."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, TypeVar

from ..metrics import (
    youtube_api_calls_total,
    youtube_calls_in_progress,
    youtube_circuit_open_total,
    youtube_quota_rejections_total,
    youtube_quota_remaining,
    youtube_quota_used,
)
from .circuit_breaker import CircuitBreaker
from .exceptions import QuotaExceeded, TerminalCallFailure, TransientCallFailure
from .quota import ENDPOINT_COSTS, InMemoryQuotaStore, QuotaTracker, RedisQuotaStore

T = TypeVar("T")


class ExternalCallGuard:
    """Wraps every outbound call to one dependency.

    Order per call: breaker admission, quota reservation, then the call
    itself. A quota rejection releases the breaker slot so a HALF_OPEN
    trial is not lost.
    """

    def __init__(self, quota: QuotaTracker, breaker: CircuitBreaker) -> None:
        self.quota = quota
        self.breaker = breaker

    def call(self, endpoint: str, func: Callable[..., T], *args: Any, cost: int | None = None, **kwargs: Any) -> T:
        units = ENDPOINT_COSTS.get(endpoint, 1) if cost is None else cost

        admission = self.breaker.acquire()
        try:
            used = self.quota.consume(units, endpoint)
        except QuotaExceeded:
            self.breaker.release(admission)
            youtube_quota_rejections_total.labels(endpoint=endpoint).inc()
            raise
        youtube_quota_used.set(used)
        youtube_quota_remaining.set(max(self.quota.daily_limit - used, 0))

        in_flight = youtube_calls_in_progress.labels(endpoint=endpoint)
        in_flight.inc()
        try:
            result = func(*args, **kwargs)
        except TransientCallFailure:
            self.breaker.record_failure(admission)
            youtube_api_calls_total.labels(endpoint=endpoint, outcome="transient").inc()
            raise
        except TerminalCallFailure:
            self.breaker.release(admission)
            youtube_api_calls_total.labels(endpoint=endpoint, outcome="terminal").inc()
            raise
        except QuotaExceeded:
            # Platform says the day's budget is gone even if our count disagrees
            self.breaker.release(admission)
            self.quota.mark_exhausted()
            youtube_api_calls_total.labels(endpoint=endpoint, outcome="quota").inc()
            raise
        except Exception:
            self.breaker.release(admission)
            youtube_api_calls_total.labels(endpoint=endpoint, outcome="error").inc()
            raise
        finally:
            in_flight.dec()

        self.breaker.record_success(admission)
        youtube_api_calls_total.labels(endpoint=endpoint, outcome="success").inc()
        return result


def _count_trip(name: str) -> None:
    youtube_circuit_open_total.labels(circuit=name).inc()


@lru_cache(maxsize=1)
def get_youtube_guard() -> ExternalCallGuard:
    """Process-wide guard for the YouTube Data API."""
    from ..config import settings

    yt = settings.youtube_config
    if yt.shared_quota:
        from ..utils.redis_lock import get_redis_client

        store = RedisQuotaStore(get_redis_client())
    else:
        store = InMemoryQuotaStore()

    breaker_cfg = settings.breaker_config
    breaker = CircuitBreaker(
        "youtube",
        failure_threshold=breaker_cfg.failure_threshold,
        window_seconds=breaker_cfg.window_seconds,
        cooldown_seconds=breaker_cfg.cooldown_seconds,
        on_trip=_count_trip,
    )
    return ExternalCallGuard(QuotaTracker(yt.daily_quota_limit, store), breaker)
