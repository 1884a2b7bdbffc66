"""
Friendship repository.

Lookups are symmetric: a pair is found whichever user sent the request.
"""
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parley.models.friendship import Friendship, FriendshipStatus, make_pair_key
from parley.repositories.base import BaseRepository


class FriendshipRepository(BaseRepository[Friendship]):
    """Repository for friendship rows."""

    def __init__(self, db: AsyncSession):
        super().__init__(Friendship, db)

    async def find_between(self, user_a: str, user_b: str) -> Optional[Friendship]:
        """
        Find the relationship row for an unordered pair.

        Uses the canonical pair key, which is unique, so at most one row matches.
        """
        result = await self.db.execute(
            select(Friendship)
            .where(Friendship.pair_key == make_pair_key(user_a, user_b))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_users(self, friendship_id: str) -> Optional[Friendship]:
        result = await self.db.execute(
            select(Friendship)
            .where(Friendship.id == friendship_id)
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, friendship_id: str) -> Optional[Friendship]:
        """Load a friendship, locking the row where the backend supports it."""
        result = await self.db.execute(
            select(Friendship)
            .where(Friendship.id == friendship_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        result = await self.db.execute(
            select(Friendship.id).where(
                Friendship.status == FriendshipStatus.BLOCKED,
                or_(
                    and_(Friendship.requester_id == user_a, Friendship.addressee_id == user_b),
                    and_(Friendship.requester_id == user_b, Friendship.addressee_id == user_a),
                ),
            ).limit(1)
        )
        return result.first() is not None

    async def list_accepted(self, user_id: str) -> List[Friendship]:
        """ACCEPTED friendships of a user, most recently accepted first."""
        result = await self.db.execute(
            select(Friendship)
            .where(
                Friendship.status == FriendshipStatus.ACCEPTED,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            )
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
            .order_by(Friendship.accepted_at.desc(), Friendship.id.desc())
        )
        return list(result.scalars().all())

    async def list_pending(self, user_id: str) -> List[Friendship]:
        """PENDING requests where the user is either side, newest first."""
        result = await self.db.execute(
            select(Friendship)
            .where(
                Friendship.status == FriendshipStatus.PENDING,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            )
            .options(selectinload(Friendship.requester), selectinload(Friendship.addressee))
            .order_by(Friendship.created_at.desc())
        )
        return list(result.scalars().all())

    async def accepted_friend_ids(self, user_id: str) -> List[str]:
        """Ids of every ACCEPTED friend, used for presence fan-out."""
        result = await self.db.execute(
            select(Friendship.requester_id, Friendship.addressee_id).where(
                Friendship.status == FriendshipStatus.ACCEPTED,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            )
        )
        return [
            addressee if requester == user_id else requester
            for requester, addressee in result.all()
        ]
