"""Read-through JSON cache for catalog data, backed by Redis.

Each cached entity has an explicit key, and every write to that entity
invalidates its key:

- ``catalog:courses``            active course listing
- ``catalog:course:{id}``        one course with its schedules
- ``catalog:schedule:{id}``      availability of one schedule

The cache fails open: when Redis is unavailable reads miss and writes are
skipped, so callers fall back to the database.

Usage:
    from libs.common.cache import cache_get, cache_set, course_key, invalidate

    cached = await cache_get(course_key(course_id))
    ...
    await invalidate(course_key(course_id), COURSES_LIST_KEY)
"""

import json
import uuid
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from redis.asyncio import Redis

logger = get_logger(__name__)

COURSES_LIST_KEY = "catalog:courses"

_redis: Optional[Redis] = None


def course_key(course_id: uuid.UUID | str) -> str:
    return f"catalog:course:{course_id}"


def schedule_key(schedule_id: uuid.UUID | str) -> str:
    return f"catalog:schedule:{schedule_id}"


async def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(
            get_settings().REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=1,
        )
    return _redis


async def cache_get(key: str) -> Optional[Any]:
    """Return the cached JSON value, or None on a miss or Redis failure."""
    if not get_settings().CACHE_ENABLED:
        return None
    try:
        redis = await get_redis()
        raw = await redis.get(key)
    except Exception as e:
        logger.warning("Cache read failed for %s: %s", key, e)
        return None
    if raw is None:
        return None
    return json.loads(raw)


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    settings = get_settings()
    if not settings.CACHE_ENABLED:
        return False
    try:
        redis = await get_redis()
        await redis.set(
            key, json.dumps(value, default=str), ex=ttl or settings.CACHE_TTL_SECONDS
        )
        return True
    except Exception as e:
        logger.warning("Cache write failed for %s: %s", key, e)
        return False


async def invalidate(*keys: str) -> bool:
    """Drop the given keys. Call after the write has been committed."""
    if not keys or not get_settings().CACHE_ENABLED:
        return False
    try:
        redis = await get_redis()
        await redis.delete(*keys)
        logger.debug("Invalidated %s", ", ".join(keys))
        return True
    except Exception as e:
        logger.warning("Cache invalidation failed for %s: %s", keys, e)
        return False
