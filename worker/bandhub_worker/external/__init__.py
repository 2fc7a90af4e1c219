"""Guarded access to the external video platform."""

from .exceptions import (
    CircuitOpen,
    ExternalCallError,
    QuotaExceeded,
    TerminalCallFailure,
    TransientCallFailure,
)

__all__ = [
    "CircuitOpen",
    "ExternalCallError",
    "QuotaExceeded",
    "TerminalCallFailure",
    "TransientCallFailure",
]
