import json
from typing import Any, Optional

import redis

from .config import get_settings
from .logging_config import get_logger

logger = get_logger(__name__)

PRODUCTS_LIST_KEY = "products_list"

_client: Optional[redis.Redis] = None


def get_cache() -> Optional[redis.Redis]:
    """Shared Redis client, or None when no Redis URL is configured."""
    global _client
    settings = get_settings()
    if settings.redis_url is None:
        return None
    if _client is None:
        _client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    return _client


def get_json(key: str) -> Optional[Any]:
    cache = get_cache()
    if cache is None:
        return None
    try:
        cached = cache.get(key)
    except redis.RedisError as exc:
        logger.warning("cache read failed", key=key, error=str(exc))
        return None
    return json.loads(cached) if cached else None


def set_json(key: str, value: Any, ttl: int) -> None:
    cache = get_cache()
    if cache is None:
        return
    try:
        cache.set(key, json.dumps(value), ex=ttl)
    except redis.RedisError as exc:
        logger.warning("cache write failed", key=key, error=str(exc))


def invalidate(key: str) -> None:
    cache = get_cache()
    if cache is None:
        return
    try:
        cache.delete(key)
    except redis.RedisError as exc:
        logger.warning("cache invalidation failed", key=key, error=str(exc))
