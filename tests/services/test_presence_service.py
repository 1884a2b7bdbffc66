"""
Unit tests for PresenceService.
"""
import pytest
from sqlalchemy import select

from parley.core.cache import RedisCache
from parley.core.presence import PresenceRegistry
from parley.models.user import User, UserStatus
from parley.services.friend_service import FriendService
from parley.services.presence_service import PresenceService


@pytest.fixture
def registry():
    """Registry with no Redis behind it, so it keeps state in-process."""
    return PresenceRegistry(RedisCache(), ttl=60)


async def stored_presence(db, user_id):
    result = await db.execute(select(User.status, User.last_seen).where(User.id == user_id))
    return result.one()


@pytest.mark.asyncio
class TestPresenceTransitions:
    async def test_only_first_connection_goes_online(self, db_session, alice, registry):
        service = PresenceService(db_session, registry)

        first = await service.connect(alice.id, "sid-1")
        second = await service.connect(alice.id, "sid-2")

        assert first.online is True
        assert second is None
        status, _ = await stored_presence(db_session, alice.id)
        assert status == UserStatus.ONLINE

    async def test_only_last_disconnect_goes_offline(self, db_session, alice, registry):
        service = PresenceService(db_session, registry)
        await service.connect(alice.id, "sid-1")
        await service.connect(alice.id, "sid-2")

        assert await service.disconnect(alice.id, "sid-1") is None
        change = await service.disconnect(alice.id, "sid-2")

        assert change.online is False
        assert change.last_seen is not None
        status, last_seen = await stored_presence(db_session, alice.id)
        assert status == UserStatus.OFFLINE
        assert last_seen is not None

    async def test_change_lists_accepted_friends(self, db_session, alice, bob, carol, registry):
        friends = FriendService(db_session)
        accepted = await friends.add_friend(bob.id, alice.friend_code)
        await friends.accept_friend_request(accepted.friendship.id, alice.id)
        await friends.add_friend(carol.id, alice.friend_code)

        change = await PresenceService(db_session, registry).connect(alice.id, "sid-1")

        assert change.friend_ids == [bob.id]
