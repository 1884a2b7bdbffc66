"""
Block registry: symmetric lookup of BLOCKED relationships.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.errors import InvalidArgumentError
from parley.repositories.friendship_repo import FriendshipRepository


class BlockService:
    """Answers whether either of two users has blocked the other."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.friendship_repo = FriendshipRepository(db)

    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        """
        True iff a BLOCKED friendship row exists for the pair, whichever
        user imposed it.

        Raises:
            InvalidArgumentError: if either id is missing
        """
        if not user_a or not user_b:
            raise InvalidArgumentError("Both user ids are required to check a block")
        return await self.friendship_repo.is_blocked(user_a, user_b)
