"""Error taxonomy for calls to the external video platform."""

from __future__ import annotations


class ExternalCallError(RuntimeError):
    """Base class for guarded external call failures."""


class QuotaExceeded(ExternalCallError):
    """Daily quota would be exceeded. Raised before any network call."""

    def __init__(self, message: str, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class CircuitOpen(ExternalCallError):
    """The dependency is presumed down; the call failed fast."""

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class TransientCallFailure(ExternalCallError):
    """Network error, timeout, 429 or 5xx. Counts toward the breaker."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TerminalCallFailure(ExternalCallError):
    """4xx or malformed request. Not retried and not a breaker failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
