"""
Unit tests for BlockService.
"""
import pytest

from parley.core.errors import InvalidArgumentError
from parley.models.friendship import Friendship, FriendshipStatus, make_pair_key
from parley.services.block_service import BlockService


@pytest.mark.asyncio
class TestIsBlocked:
    async def _relate(self, db_session, requester, addressee, status):
        db_session.add(Friendship(
            requester_id=requester.id,
            addressee_id=addressee.id,
            pair_key=make_pair_key(requester.id, addressee.id),
            status=status,
        ))
        await db_session.commit()

    async def test_symmetric(self, db_session, alice, bob):
        """Either order of the pair sees the block."""
        await self._relate(db_session, alice, bob, FriendshipStatus.BLOCKED)
        service = BlockService(db_session)

        assert await service.is_blocked(alice.id, bob.id)
        assert await service.is_blocked(bob.id, alice.id)

    @pytest.mark.parametrize(
        "status",
        [FriendshipStatus.PENDING, FriendshipStatus.ACCEPTED, FriendshipStatus.DECLINED],
    )
    async def test_other_statuses_are_not_blocks(self, db_session, alice, bob, status):
        await self._relate(db_session, alice, bob, status)

        assert not await BlockService(db_session).is_blocked(alice.id, bob.id)

    async def test_unrelated_users(self, db_session, alice, bob, carol):
        await self._relate(db_session, alice, bob, FriendshipStatus.BLOCKED)

        assert not await BlockService(db_session).is_blocked(alice.id, carol.id)

    async def test_missing_id(self, db_session, alice):
        with pytest.raises(InvalidArgumentError):
            await BlockService(db_session).is_blocked(alice.id, "")
