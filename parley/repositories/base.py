"""
Base repository with common CRUD operations.
All repositories extend this class for database access.
"""
from typing import Generic, TypeVar, Type, Optional, List, Sequence

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from parley.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over a model with a single `id` primary key.

    Repositories flush but never commit; the calling service owns the
    transaction.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            db: Async database session
        """
        self.model = model
        self.db = db

    async def create(self, **kwargs) -> ModelType:
        """
        Create a new record and flush it so defaults are populated.

        Example:
            ```python
            friendship = await friendship_repo.create(
                requester_id=me.id, addressee_id=other.id, pair_key=key
            )
            ```
        """
        instance = self.model(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def get(self, id: str) -> Optional[ModelType]:
        """
        Get a record by ID.

        Returns:
            Model instance or None if not found
        """
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_many(self, ids: Sequence[str]) -> List[ModelType]:
        """Get every record whose id is in `ids` (missing ids are skipped)."""
        if not ids:
            return []
        result = await self.db.execute(
            select(self.model).where(self.model.id.in_(list(ids)))
        )
        return list(result.scalars().all())

    async def delete(self, id: str) -> bool:
        """
        Delete a record by ID (hard delete).

        Returns:
            True if a row was deleted
        """
        result = await self.db.execute(
            delete(self.model).where(self.model.id == id)
        )
        await self.db.flush()
        return result.rowcount > 0

    async def exists(self, id: str) -> bool:
        result = await self.db.execute(
            select(func.count()).select_from(self.model).where(self.model.id == id)
        )
        return result.scalar() > 0
