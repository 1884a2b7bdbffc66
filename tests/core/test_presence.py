"""
Tests for the presence registry in both of its backends.
"""
import pytest

from parley.core.cache import RedisCache
from parley.core.presence import PresenceRegistry


@pytest.mark.asyncio
class TestLocalRegistry:
    """Registry state kept in-process when Redis is unavailable."""

    async def test_counts_connections(self):
        registry = PresenceRegistry(RedisCache(), ttl=60)

        assert await registry.add_connection("u1", "a") == 1
        assert await registry.add_connection("u1", "b") == 2
        assert await registry.add_connection("u1", "b") == 2

        assert await registry.remove_connection("u1", "a") == 1
        assert await registry.remove_connection("u1", "b") == 0

    async def test_remove_unknown_connection(self):
        registry = PresenceRegistry(RedisCache(), ttl=60)

        assert await registry.remove_connection("nobody", "a") == 0

    async def test_touch_restores_a_lost_entry(self):
        registry = PresenceRegistry(RedisCache(), ttl=60)
        await registry.add_connection("u1", "a")
        await registry.add_connection("u1", "b")
        registry._local.clear()

        await registry.touch("u1", "b")

        assert await registry.remove_connection("u1", "a") == 1


@pytest.mark.asyncio
class TestRedisRegistry:
    async def test_uses_redis_sets(self, mocker):
        backend = RedisCache()
        backend.redis = mocker.MagicMock()
        mocker.patch.object(backend, "add_to_set", mocker.AsyncMock(return_value=1))
        mocker.patch.object(backend, "remove_from_set", mocker.AsyncMock(return_value=0))
        registry = PresenceRegistry(backend, ttl=120)

        assert await registry.add_connection("u1", "sid") == 1
        assert await registry.remove_connection("u1", "sid") == 0

        backend.add_to_set.assert_awaited_once_with("presence:connections:u1", "sid", ttl=120)
        backend.remove_from_set.assert_awaited_once_with("presence:connections:u1", "sid")

    async def test_touch_readds_member_with_fresh_ttl(self, mocker):
        """An expired key is rebuilt rather than only re-expired."""
        backend = RedisCache()
        backend.redis = mocker.MagicMock()
        mocker.patch.object(backend, "add_to_set", mocker.AsyncMock(return_value=1))
        registry = PresenceRegistry(backend, ttl=120)

        await registry.touch("u1", "sid")

        backend.add_to_set.assert_awaited_once_with("presence:connections:u1", "sid", ttl=120)
