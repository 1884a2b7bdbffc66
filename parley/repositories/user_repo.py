"""
User repository.
"""
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.models.user import User
from parley.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for user lookups."""

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_by_friend_code(self, friend_code: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.friend_code == friend_code.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_by_identifier(self, identifier: str) -> Optional[User]:
        """Find a user by email or username (used for login)."""
        identifier = identifier.strip()
        result = await self.db.execute(
            select(User).where(
                or_(User.email == identifier.lower(), User.username == identifier)
            )
        )
        return result.scalar_one_or_none()

    async def email_or_username_taken(self, email: str, username: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(
                or_(User.email == email.lower(), User.username == username)
            ).limit(1)
        )
        return result.first() is not None

    async def friend_code_taken(self, friend_code: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(User.friend_code == friend_code).limit(1)
        )
        return result.first() is not None
