"""
Redis Connection and Utilities

Provides Redis connection pooling and a small JSON cache used for derived
per-user activity stats. Redis is never the source of truth: everything
cached here can be recomputed from the database.

Usage:
    from studytrack.db.redis import get_redis, RedisCache

    # Get Redis connection
    redis = await get_redis()
    await redis.publish("channel", "payload")

    # JSON cache
    cache = RedisCache(prefix="activity_stats")
    await cache.set_field(owner_id, "UTC", stats.model_dump(mode="json"))
    await cache.delete(owner_id)
"""

import json
from typing import Any, Optional

import redis.asyncio as redis

from studytrack.config import settings, yaml_config


# Get Redis configuration from yaml config
redis_config: dict[str, Any] = yaml_config.get("redis", {})
DEFAULT_CACHE_TTL: int = redis_config.get("cache_ttl", 300)


# Connection pool (lazily initialized)
_redis_pool: Optional[redis.ConnectionPool] = None


async def get_redis_pool() -> redis.ConnectionPool:
    """Get or create the Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=10,
        )
    return _redis_pool


async def get_redis() -> redis.Redis:
    """
    Get a Redis connection from the pool.

    Usage:
        redis = await get_redis()
        await redis.set("key", "value")
    """
    pool = await get_redis_pool()
    return redis.Redis(connection_pool=pool)


async def close_redis_pool() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None


class RedisCache:
    """
    Namespaced JSON cache backed by Redis.

    Each key is a hash stored as "{prefix}:{key}" with a TTL; fields hold
    JSON values that vary by a secondary dimension (e.g. timezone).
    """

    def __init__(self, prefix: str = "cache") -> None:
        self.prefix = prefix

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def delete(self, key: str) -> None:
        """Delete a value from cache."""
        r = await get_redis()
        await r.delete(self._make_key(key))

    async def get_field(self, key: str, field: str) -> Optional[Any]:
        """Get one field of a cached hash."""
        r = await get_redis()
        value = await r.hget(self._make_key(key), field)
        if value:
            return json.loads(value)
        return None

    async def set_field(
        self, key: str, field: str, value: Any, ttl: int = DEFAULT_CACHE_TTL
    ) -> None:
        """
        Set one field of a cached hash.

        The TTL applies to the whole hash, so delete(key) drops every field.
        """
        r = await get_redis()
        full_key = self._make_key(key)
        await r.hset(full_key, field, json.dumps(value))
        await r.expire(full_key, ttl)
