"""
Presence transitions driven by socket connects and disconnects.

A user is ONLINE while at least one connection is open. Only the first
connection and the last disconnection change persisted state and produce a
PresenceChange to broadcast.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.presence import PresenceRegistry, presence_registry
from parley.models.user import User, UserStatus
from parley.repositories.friendship_repo import FriendshipRepository
from parley.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class PresenceChange:
    user_id: str
    online: bool
    last_seen: Optional[datetime] = None
    friend_ids: List[str] = field(default_factory=list)


class PresenceService:
    def __init__(self, db: AsyncSession, registry: PresenceRegistry = presence_registry):
        self.db = db
        self.registry = registry
        self.friendship_repo = FriendshipRepository(db)

    async def _persist(self, user_id: str, status: UserStatus, last_seen: Optional[datetime]) -> None:
        values = {"status": status}
        if last_seen is not None:
            values["last_seen"] = last_seen
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def connect(self, user_id: str, connection_id: str) -> Optional[PresenceChange]:
        """Register a connection; returns a change only for the user's first one."""
        count = await self.registry.add_connection(user_id, connection_id)
        if count != 1:
            return None

        await self._persist(user_id, UserStatus.ONLINE, None)
        logger.info(f"User {user_id} is online")
        return PresenceChange(
            user_id=user_id,
            online=True,
            friend_ids=await self.friendship_repo.accepted_friend_ids(user_id),
        )

    async def disconnect(self, user_id: str, connection_id: str) -> Optional[PresenceChange]:
        """Unregister a connection; returns a change only when none remain."""
        remaining = await self.registry.remove_connection(user_id, connection_id)
        if remaining > 0:
            return None

        last_seen = utc_now()
        await self._persist(user_id, UserStatus.OFFLINE, last_seen)
        logger.info(f"User {user_id} is offline")
        return PresenceChange(
            user_id=user_id,
            online=False,
            last_seen=last_seen,
            friend_ids=await self.friendship_repo.accepted_friend_ids(user_id),
        )
