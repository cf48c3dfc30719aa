"""Shared Redis connection."""
import redis
from functools import lru_cache

from pricelab.config import get_settings


@lru_cache()
def get_redis() -> redis.Redis:
    """Get cached Redis client. Connections are opened lazily by the pool."""
    return redis.from_url(get_settings().redis_url, decode_responses=True)
