"""Fail-fast environment validation for the video worker and beat scheduler."""

from __future__ import annotations

import os
from functools import lru_cache
from urllib.parse import urlparse

ALLOWED_ENVIRONMENTS = {"development", "staging", "production"}
ALLOWED_WORKER_ROLES = {"worker", "beat", "maintenance"}


def require_env(name: str) -> str:
    """Fetch an environment variable or raise RuntimeError if missing."""
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"{name} is required and must be set before startup.")
    return value.strip()


def validate_environment_value(environment: str) -> None:
    """Ensure ENVIRONMENT is one of the allowed values."""
    if environment not in ALLOWED_ENVIRONMENTS:
        allowed = ", ".join(sorted(ALLOWED_ENVIRONMENTS))
        raise RuntimeError(f"ENVIRONMENT must be one of: {allowed}.")


def validate_non_local_url(name: str, value: str) -> None:
    """Ensure a URL does not point to localhost in production."""
    parsed = urlparse(value)
    host = parsed.hostname
    if not host:
        raise RuntimeError(f"{name} must be a valid URL (missing hostname).")
    if host in {"localhost", "127.0.0.1"}:
        raise RuntimeError(f"{name} must not point to localhost in production.")


def validate_database_credentials(value: str) -> None:
    """Ensure DATABASE_URL does not use default credentials in production."""
    parsed = urlparse(value)
    if parsed.username == "postgres" and parsed.password == "postgres":
        raise RuntimeError(
            "DATABASE_URL must not use default postgres credentials in production."
        )


def validate_youtube_api_key(value: str) -> None:
    """Reject obvious placeholder keys before they burn a day of failed calls."""
    if value.lower() in {"changeme", "your-api-key", "test", "dummy"}:
        raise RuntimeError("YOUTUBE_API_KEY must be a real API key in production.")


@lru_cache(maxsize=1)
def validate_env() -> None:
    """Validate required environment variables before the worker starts.

    Uses WORKER_ROLE to decide which credentials are required so each
    container only demands the secrets it actually needs.

    Roles:
        worker      - sync/promotion worker: needs YOUTUBE_API_KEY.
        beat        - scheduler: enqueues only, no API key.
        maintenance - cleanup/monitoring worker: no API key.
    """
    environment = require_env("ENVIRONMENT")
    validate_environment_value(environment)

    database_url = require_env("DATABASE_URL")
    redis_url = require_env("REDIS_URL")

    if environment == "production":
        validate_non_local_url("DATABASE_URL", database_url)
        validate_database_credentials(database_url)
        validate_non_local_url("REDIS_URL", redis_url)

        role = os.getenv("WORKER_ROLE", "worker")
        if role not in ALLOWED_WORKER_ROLES:
            allowed = ", ".join(sorted(ALLOWED_WORKER_ROLES))
            raise RuntimeError(f"WORKER_ROLE must be one of: {allowed}.")

        if role == "worker":
            validate_youtube_api_key(require_env("YOUTUBE_API_KEY"))
