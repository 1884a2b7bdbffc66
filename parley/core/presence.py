"""
Presence registry: user id -> set of live connection ids.

Backed by Redis sets (shared by every server instance, entries expire after
`cache_presence_ttl`) when Redis is available, otherwise by an in-process
dict. Only the socket handlers mutate it.
"""
import logging
from typing import Dict, Set

from parley.config import settings
from parley.core.cache import RedisCache, cache

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Tracks how many connections each user has open."""

    KEY_PREFIX = "presence:connections:"

    def __init__(self, backend: RedisCache, ttl: int):
        self.backend = backend
        self.ttl = ttl
        self._local: Dict[str, Set[str]] = {}

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def add_connection(self, user_id: str, connection_id: str) -> int:
        """Register a connection; returns the user's connection count afterwards."""
        if self.backend.available:
            return await self.backend.add_to_set(self._key(user_id), connection_id, ttl=self.ttl)

        connections = self._local.setdefault(user_id, set())
        connections.add(connection_id)
        return len(connections)

    async def remove_connection(self, user_id: str, connection_id: str) -> int:
        """Unregister a connection; returns how many remain for the user."""
        if self.backend.available:
            return await self.backend.remove_from_set(self._key(user_id), connection_id)

        connections = self._local.get(user_id)
        if not connections:
            return 0
        connections.discard(connection_id)
        if not connections:
            del self._local[user_id]
            return 0
        return len(connections)

    async def touch(self, user_id: str, connection_id: str) -> None:
        """
        Re-register a live connection and extend the TTL of its user's entry.

        Called on every client event, so a Redis entry that expired while
        the connection sat idle is rebuilt before a sibling disconnects.
        """
        if self.backend.available:
            await self.backend.add_to_set(self._key(user_id), connection_id, ttl=self.ttl)
            return

        self._local.setdefault(user_id, set()).add(connection_id)


presence_registry = PresenceRegistry(cache, ttl=settings.cache_presence_ttl)
