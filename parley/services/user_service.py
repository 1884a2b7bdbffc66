"""
User accounts: registration, credential checks and avatar management.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from parley.core.security import hash_password, verify_password
from parley.models.user import User
from parley.repositories.user_repo import UserRepository
from parley.services.storage_service import StorageService
from parley.utils.validators import generate_friend_code

logger = logging.getLogger(__name__)

MAX_FRIEND_CODE_ATTEMPTS = 5


class UserService:
    """Service for user operations with business logic."""

    def __init__(self, db: AsyncSession, storage: Optional[StorageService] = None):
        self.db = db
        self.user_repo = UserRepository(db)
        self._storage = storage

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService()
        return self._storage

    async def register(
        self,
        email: str,
        username: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> User:
        """
        Create an account with a freshly generated friend code.

        Raises:
            ConflictError: email or username already registered
        """
        email = email.strip().lower()
        username = username.strip()
        if await self.user_repo.email_or_username_taken(email, username):
            raise ConflictError("Email or username already registered")

        friend_code = None
        for _ in range(MAX_FRIEND_CODE_ATTEMPTS):
            candidate = generate_friend_code(username)
            if not await self.user_repo.friend_code_taken(candidate):
                friend_code = candidate
                break
        if friend_code is None:
            raise ConflictError("Could not allocate a friend code, please retry")

        try:
            user = await self.user_repo.create(
                email=email,
                username=username,
                display_name=display_name or username,
                password_hash=hash_password(password),
                friend_code=friend_code,
            )
            user_id = user.id
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Email or username already registered")

        logger.info(f"User registered: {user_id} ({username})")
        return await self.get_user(user_id)

    async def authenticate(self, identifier: str, password: str) -> User:
        """Check credentials given an email or username."""
        user = await self.user_repo.get_by_identifier(identifier or "")
        if user is None or not verify_password(password or "", user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self.user_repo.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create_avatar_upload(self, user_id: str, content_type: str) -> Tuple[str, str]:
        """
        Presign a direct-to-bucket PUT for a new avatar.

        Returns:
            Tuple of (upload_url, object key)
        """
        allowed = settings.get_avatar_allowed_types()
        if content_type not in allowed:
            raise InvalidArgumentError(f"Unsupported avatar type. Allowed: {', '.join(allowed)}")

        key = self.storage.build_avatar_key(user_id, content_type)
        return self.storage.presign_put(key, content_type), key

    async def complete_avatar_upload(self, user_id: str, key: str) -> User:
        """
        Make an uploaded object the user's avatar.

        The object must live under the user's own prefix, have an allowed
        type and fit the size limit; oversized uploads are deleted.
        """
        if not key or not key.startswith(f"avatars/{user_id}/"):
            raise ForbiddenError("Avatar key does not belong to this user")

        metadata = self.storage.head(key)
        if metadata is None:
            raise NotFoundError("Uploaded avatar not found")
        if metadata.content_type not in settings.get_avatar_allowed_types():
            self.storage.delete(key)
            raise InvalidArgumentError("Unsupported avatar type")
        if metadata.content_length > settings.avatar_max_size:
            self.storage.delete(key)
            raise InvalidArgumentError(
                f"Avatar exceeds maximum size of {settings.avatar_max_size // (1024 * 1024)}MB"
            )

        user = await self.get_user(user_id)
        previous_key = user.avatar_key
        user.avatar_key = key
        user.avatar_url = self.storage.get_public_url(key)
        await self.db.commit()

        if previous_key and previous_key != key:
            self.storage.delete(previous_key)
        return user

    async def delete_avatar(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        previous_key = user.avatar_key
        user.avatar_key = None
        user.avatar_url = None
        await self.db.commit()

        if previous_key:
            self.storage.delete(previous_key)
        return user
