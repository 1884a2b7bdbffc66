"""
Conversation and Participant repositories.
"""
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parley.models.conversation import Conversation, ConversationType, Participant, ParticipantRole
from parley.models.friendship import canonical_pair
from parley.models.message import Message, MessageContentType, MessageReceipt
from parley.repositories.base import BaseRepository
from parley.utils.pagination import Cursor, older_than


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversation operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    async def find_direct(self, user_a: str, user_b: str) -> Optional[Conversation]:
        """Find the DIRECT conversation for an unordered pair."""
        low, high = canonical_pair(user_a, user_b)
        result = await self.db.execute(
            select(Conversation)
            .where(
                Conversation.type == ConversationType.DIRECT,
                Conversation.participant_a_id == low,
                Conversation.participant_b_id == high,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_participants(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(selectinload(Conversation.participants).selectinload(Participant.user))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_conversations(
        self,
        user_id: str,
        limit: int,
        cursor: Optional[Cursor] = None,
    ) -> Tuple[List[Conversation], bool]:
        """
        Page through a user's conversations, most recently active first.

        Direct conversations are matched on the canonical pair columns and
        groups through participant membership. Ordering is descending
        (updated_at, id); limit + 1 rows are fetched to detect another page.

        Returns:
            Tuple of (conversations, has_more)
        """
        member_of = select(Participant.conversation_id).where(Participant.user_id == user_id)

        visible = or_(
            and_(
                Conversation.type == ConversationType.DIRECT,
                or_(
                    Conversation.participant_a_id == user_id,
                    Conversation.participant_b_id == user_id,
                ),
            ),
            and_(
                Conversation.type == ConversationType.GROUP,
                Conversation.id.in_(member_of),
            ),
        )
        query = select(Conversation).where(visible)
        if cursor is not None:
            query = query.where(older_than(cursor, Conversation.updated_at, Conversation.id))

        query = (
            query.options(selectinload(Conversation.participants).selectinload(Participant.user))
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
            .limit(limit + 1)
            .execution_options(populate_existing=True)
        )

        result = await self.db.execute(query)
        rows = list(result.scalars().all())
        return rows[:limit], len(rows) > limit

    async def get_last_messages(self, conversation_ids: Sequence[str]) -> Dict[str, Message]:
        """
        Most recent non-control message of each conversation, in one query.
        """
        if not conversation_ids:
            return {}

        ranked = (
            select(
                Message.id.label("message_id"),
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("rank"),
            )
            .where(
                Message.conversation_id.in_(list(conversation_ids)),
                Message.content_type != MessageContentType.SIGNAL_KEY_DISTRIBUTION,
            )
            .subquery()
        )

        result = await self.db.execute(
            select(Message)
            .join(ranked, Message.id == ranked.c.message_id)
            .where(ranked.c.rank == 1)
            .options(selectinload(Message.sender))
        )
        return {message.conversation_id: message for message in result.scalars().all()}

    async def get_unread_counts(
        self,
        user_id: str,
        conversation_ids: Sequence[str],
    ) -> Dict[str, int]:
        """
        Unread messages per conversation for `user_id`, in one query.

        Counts non-control messages from other senders that have no receipt
        from the user.
        """
        if not conversation_ids:
            return {}

        has_receipt = exists().where(
            MessageReceipt.message_id == Message.id,
            MessageReceipt.user_id == user_id,
        )
        result = await self.db.execute(
            select(Message.conversation_id, func.count(Message.id))
            .join(
                Participant,
                and_(
                    Participant.conversation_id == Message.conversation_id,
                    Participant.user_id == user_id,
                ),
            )
            .where(
                Message.conversation_id.in_(list(conversation_ids)),
                Message.sender_id != user_id,
                Message.content_type != MessageContentType.SIGNAL_KEY_DISTRIBUTION,
                ~has_receipt,
            )
            .group_by(Message.conversation_id)
        )
        return {conversation_id: count for conversation_id, count in result.all()}


class ParticipantRepository:
    """Repository for conversation membership and unread counters."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(
        self,
        conversation_id: str,
        user_id: str,
        with_user: bool = False,
    ) -> Optional[Participant]:
        query = select(Participant).where(
            Participant.conversation_id == conversation_id,
            Participant.user_id == user_id,
        )
        if with_user:
            query = query.options(selectinload(Participant.user))
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def is_member(self, conversation_id: str, user_id: str) -> bool:
        result = await self.db.execute(
            select(Participant.user_id).where(
                Participant.conversation_id == conversation_id,
                Participant.user_id == user_id,
            )
        )
        return result.first() is not None

    async def get_participant_ids(self, conversation_id: str) -> List[str]:
        result = await self.db.execute(
            select(Participant.user_id).where(Participant.conversation_id == conversation_id)
        )
        return list(result.scalars().all())

    async def list_with_users(self, conversation_id: str) -> List[Participant]:
        result = await self.db.execute(
            select(Participant)
            .where(Participant.conversation_id == conversation_id)
            .options(selectinload(Participant.user))
            .order_by(Participant.joined_at, Participant.user_id)
        )
        return list(result.scalars().all())

    async def count(self, conversation_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Participant).where(
                Participant.conversation_id == conversation_id
            )
        )
        return result.scalar()

    async def add(
        self,
        conversation_id: str,
        user_id: str,
        role: ParticipantRole = ParticipantRole.MEMBER,
    ) -> Participant:
        participant = Participant(conversation_id=conversation_id, user_id=user_id, role=role)
        self.db.add(participant)
        await self.db.flush()
        return participant

    async def ensure(self, conversation_id: str, user_ids: Sequence[str]) -> None:
        """Create missing participant rows for `user_ids`."""
        existing = set(await self.get_participant_ids(conversation_id))
        for user_id in user_ids:
            if user_id not in existing:
                self.db.add(Participant(conversation_id=conversation_id, user_id=user_id))
        await self.db.flush()

    async def remove(self, conversation_id: str, user_id: str) -> bool:
        result = await self.db.execute(
            delete(Participant).where(
                Participant.conversation_id == conversation_id,
                Participant.user_id == user_id,
            )
        )
        return result.rowcount > 0

    async def increment_unread(self, conversation_id: str, user_ids: Sequence[str]) -> None:
        """Add one to unread_count for every user in `user_ids`, in a single UPDATE."""
        if not user_ids:
            return
        await self.db.execute(
            update(Participant)
            .where(
                Participant.conversation_id == conversation_id,
                Participant.user_id.in_(list(user_ids)),
            )
            .values(unread_count=Participant.unread_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def decrement_unread(
        self,
        conversation_id: str,
        user_ids: Sequence[str],
        amount: int,
    ) -> None:
        """Subtract `amount` from unread_count, resetting to zero instead of going negative."""
        if not user_ids or amount <= 0:
            return
        await self.db.execute(
            update(Participant)
            .where(
                Participant.conversation_id == conversation_id,
                Participant.user_id.in_(list(user_ids)),
            )
            .values(
                unread_count=case(
                    (Participant.unread_count < amount, 0),
                    else_=Participant.unread_count - amount,
                )
            )
            .execution_options(synchronize_session=False)
        )

    async def get_unread_counts(self, conversation_id: str, user_ids: Sequence[str]) -> Dict[str, int]:
        """Current stored unread_count per user, read fresh from the database."""
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(Participant.user_id, Participant.unread_count).where(
                Participant.conversation_id == conversation_id,
                Participant.user_id.in_(list(user_ids)),
            )
        )
        return {user_id: count for user_id, count in result.all()}

    async def get_unread_count(self, conversation_id: str, user_id: str) -> int:
        counts = await self.get_unread_counts(conversation_id, [user_id])
        return counts.get(user_id, 0)
