"""Shared Redis client and distributed lock helpers."""
from __future__ import annotations

from functools import lru_cache

import redis

from ..logging import logger

LOCK_TIMEOUT_5MIN = 300


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Return a process-wide Redis client for the configured REDIS_URL."""
    from ..config import settings

    return redis.from_url(settings.redis_url, decode_responses=True)


def acquire_redis_lock(lock_name: str, timeout: int = LOCK_TIMEOUT_5MIN) -> bool:
    """Try to acquire a Redis lock. Returns True if acquired."""
    try:
        return bool(get_redis_client().set(lock_name, "1", nx=True, ex=timeout))
    except redis.RedisError as exc:
        logger.warning("redis_lock_failed", lock=lock_name, error=str(exc))
        return True  # Proceed anyway if Redis is down


def release_redis_lock(lock_name: str) -> None:
    """Release a Redis lock."""
    try:
        get_redis_client().delete(lock_name)
    except redis.RedisError as exc:
        logger.warning("redis_unlock_failed", lock=lock_name, error=str(exc))
