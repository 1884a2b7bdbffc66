"""
Redis cache management.
Provides connection pooling and helper functions for caching operations.

Redis is optional: with no URL configured (or an unreachable server) every
helper degrades to a no-op and callers fall back to process-local state.
"""
import json
import logging
from typing import Any, Optional

from redis import asyncio as aioredis

from parley.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis cache manager with connection pooling."""

    def __init__(self):
        """Initialize Redis connection pool."""
        self.redis: Optional[aioredis.Redis] = None

    @property
    def available(self) -> bool:
        return self.redis is not None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if not settings.redis_url:
            logger.info("No Redis URL provided - running without Redis")
            self.redis = None
            return

        try:
            self.redis = aioredis.from_url(
                settings.redis_url,
                password=settings.redis_password or None,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except (aioredis.RedisError, OSError) as e:
            logger.warning(f"Could not connect to Redis, running without it: {e}")
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        if not self.redis:
            return None

        value = await self.redis.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache with optional TTL.

        Args:
            key: Cache key
            value: Value to cache (dicts and lists are stored as JSON)
            ttl: Time to live in seconds
        """
        if not self.redis:
            return False

        if isinstance(value, (dict, list)):
            value = json.dumps(value)

        if ttl:
            return bool(await self.redis.setex(key, ttl, value))
        return bool(await self.redis.set(key, value))

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        if not self.redis:
            return False

        return bool(await self.redis.delete(key))

    async def add_to_set(self, key: str, member: str, ttl: Optional[int] = None) -> int:
        """
        Add a member to a set and return the set's size afterwards.

        SADD, EXPIRE and SCARD run in one MULTI/EXEC so the size reflects
        this addition atomically.
        """
        if not self.redis:
            return 0

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.sadd(key, member)
            if ttl:
                pipe.expire(key, ttl)
            pipe.scard(key)
            results = await pipe.execute()
        return int(results[-1])

    async def remove_from_set(self, key: str, member: str) -> int:
        """Remove a member from a set and return the remaining size."""
        if not self.redis:
            return 0

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.srem(key, member)
            pipe.scard(key)
            results = await pipe.execute()
        return int(results[-1])


# Global cache instance
cache = RedisCache()
