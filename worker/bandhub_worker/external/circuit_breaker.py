"""Three-state circuit breaker guarding one external dependency."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..logging import logger
from .exceptions import CircuitOpen


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class Admission:
    """Ticket handed out by ``acquire()``.

    ``generation`` is the trip count at admission time. Outcomes from an
    older generation arrived after the breaker changed state and are
    ignored.
    """

    generation: int
    trial: bool = False


class CircuitBreaker:
    """Fails fast while a dependency is down.

    CLOSED passes calls through. ``failure_threshold`` consecutive failures
    inside ``window_seconds`` move it to OPEN, where every call raises
    ``CircuitOpen`` without touching the network. Once ``cooldown_seconds``
    have passed the next caller becomes the single HALF_OPEN trial; any
    concurrent caller still fails fast. A successful trial closes the
    circuit, a failed one reopens it.

    Callers must pair every ``acquire()`` with exactly one of
    ``record_success()``, ``record_failure()`` or ``release()``, passing
    back the ``Admission`` they were given. Only outcomes of the current
    generation change state, and while HALF_OPEN only the trial's does.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        on_trip: Callable[[str], None] | None = None,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._on_trip = on_trip
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at = 0.0
        self._trial_in_flight = False
        self.trip_count = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def acquire(self) -> Admission:
        """Admit a call or raise ``CircuitOpen``."""
        with self._lock:
            now = self._clock()
            if self._state == CircuitState.OPEN:
                elapsed = now - self._opened_at
                if elapsed < self.cooldown_seconds:
                    raise CircuitOpen(
                        f"Circuit '{self.name}' is open",
                        retry_after_seconds=max(int(self.cooldown_seconds - elapsed), 1),
                    )
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info("circuit_half_open", circuit=self.name)

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpen(
                        f"Circuit '{self.name}' is probing",
                        retry_after_seconds=max(int(self.cooldown_seconds), 1),
                    )
                self._trial_in_flight = True
                return Admission(self.trip_count, trial=True)
            return Admission(self.trip_count)

    def _counts(self, admission: Admission) -> bool:
        if admission.generation != self.trip_count:
            logger.debug(
                "circuit_stale_outcome_ignored",
                circuit=self.name,
                generation=admission.generation,
                current=self.trip_count,
            )
            return False
        if self._state == CircuitState.HALF_OPEN:
            return admission.trial
        return self._state == CircuitState.CLOSED

    def record_success(self, admission: Admission) -> None:
        with self._lock:
            if not self._counts(admission):
                return
            if self._state == CircuitState.HALF_OPEN:
                logger.info("circuit_closed", circuit=self.name)
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._trial_in_flight = False

    def record_failure(self, admission: Admission) -> None:
        with self._lock:
            if not self._counts(admission):
                return
            now = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._trip(now, reason="trial_failed")
                return
            self._failures.append(now)
            cutoff = now - self.window_seconds
            while self._failures and self._failures[0] < cutoff:
                self._failures.popleft()
            if len(self._failures) >= self.failure_threshold:
                self._trip(now, reason="failure_threshold")

    def release(self, admission: Admission) -> None:
        """End a call whose outcome says nothing about dependency health."""
        with self._lock:
            if admission.trial and admission.generation == self.trip_count:
                self._trial_in_flight = False

    def _trip(self, now: float, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._failures.clear()
        self._trial_in_flight = False
        self.trip_count += 1
        logger.warning(
            "circuit_opened",
            circuit=self.name,
            reason=reason,
            cooldown_seconds=self.cooldown_seconds,
        )
        if self._on_trip:
            self._on_trip(self.name)
