"""
Refresh token store: issue, rotate, revoke and prune.

The plaintext token is returned to the client exactly once; only its
SHA-256 hash is persisted. Rotation revokes the presented token and links
it to its successor. Presenting a token that was already rotated is treated
as theft and revokes every token of the user.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.errors import AuthenticationError
from parley.core.security import create_access_token, generate_refresh_token, hash_refresh_token
from parley.models.refresh_token import RefreshToken
from parley.utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    user_id: str
    expires_in: int


class TokenService:
    """Service for refresh token lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find(self, plain_token: str) -> Optional[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == hash_refresh_token(plain_token))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _revoke_all(self, user_id: str) -> None:
        await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.warning(f"All refresh tokens revoked for user {user_id}")

    def _new_record(
        self,
        user_id: str,
        device_id: Optional[str],
        user_agent: Optional[str],
    ) -> tuple[RefreshToken, str]:
        plain = generate_refresh_token()
        record = RefreshToken(
            user_id=user_id,
            token_hash=hash_refresh_token(plain),
            expires_at=utc_now() + timedelta(seconds=settings.refresh_token_expire_seconds),
            device_id=device_id,
            user_agent=user_agent,
        )
        self.db.add(record)
        return record, plain

    async def issue(
        self,
        user_id: str,
        device_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """Create a refresh token plus a fresh access token for a user."""
        _, plain = self._new_record(user_id, device_id, user_agent)
        await self.db.commit()
        return TokenPair(
            access_token=create_access_token(user_id),
            refresh_token=plain,
            user_id=user_id,
            expires_in=settings.access_token_expire_seconds,
        )

    async def rotate(
        self,
        current_token: str,
        device_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        The old token is revoked with an update-if-not-revoked. If that
        affects no row, another rotation of the same token won: the new
        token is rolled back and all of the user's tokens are revoked.

        Raises:
            AuthenticationError: unknown, revoked, expired or reused token
        """
        if not current_token:
            raise AuthenticationError("No refresh token provided")

        record = await self._find(current_token)
        if record is None:
            raise AuthenticationError("Refresh token not found or already used")

        record_id = record.id
        user_id = record.user_id
        if record.revoked:
            await self._revoke_all(user_id)
            raise AuthenticationError("Refresh token revoked")
        if ensure_utc(record.expires_at) < utc_now():
            raise AuthenticationError("Refresh token expired")

        new_record, plain = self._new_record(user_id, device_id, user_agent)
        await self.db.flush()

        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, replaced_by_id=new_record.id, last_used_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            logger.warning(f"Refresh token reuse detected for user {user_id}")
            await self._revoke_all(user_id)
            raise AuthenticationError("Refresh token reuse detected")

        await self.db.commit()
        return TokenPair(
            access_token=create_access_token(user_id),
            refresh_token=plain,
            user_id=user_id,
            expires_in=settings.access_token_expire_seconds,
        )

    async def revoke(self, current_token: Optional[str]) -> bool:
        """Revoke a single token (logout). Unknown tokens are ignored."""
        if not current_token:
            return False
        record = await self._find(current_token)
        if record is None:
            return False
        record.revoked = True
        record.last_used_at = utc_now()
        await self.db.commit()
        return True

    async def prune(self, revoked_older_than_days: Optional[int] = None) -> int:
        """
        Delete expired tokens and revoked tokens older than the retention window.

        Returns:
            Number of rows deleted
        """
        if revoked_older_than_days is None:
            revoked_older_than_days = settings.refresh_token_retention_days
        now = utc_now()

        removed = (await self.db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < now)
        )).rowcount

        if revoked_older_than_days > 0:
            cutoff = now - timedelta(days=revoked_older_than_days)
            removed += (await self.db.execute(
                delete(RefreshToken).where(
                    RefreshToken.revoked.is_(True),
                    RefreshToken.created_at < cutoff,
                )
            )).rowcount

        await self.db.commit()
        logger.info(f"Pruned {removed} refresh tokens")
        return removed
