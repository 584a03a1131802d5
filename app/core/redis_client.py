import redis.asyncio as redis
from functools import lru_cache
from typing import Optional

from app.core.config import get_settings


@lru_cache()
def get_redis_client(redis_url: Optional[str] = None):
    # Falls back to the configured REDIS_URL, then to a local instance
    redis_url = redis_url or get_settings().redis_url or "redis://localhost:6379/0"
    return redis.from_url(redis_url, decode_responses=True)


async def get_redis():
    return get_redis_client()
