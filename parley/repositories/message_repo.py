"""
Message and MessageReceipt repositories.
"""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parley.models.conversation import Participant
from parley.models.message import Message, MessageContentType, MessageReceipt
from parley.repositories.base import BaseRepository
from parley.utils.datetime_utils import utc_now
from parley.utils.pagination import Cursor, older_than

RECEIPT_INSERT_CHUNK = 500


class MessageRepository(BaseRepository[Message]):
    """Repository for message operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Message, db)

    async def get_with_relations(self, message_id: str) -> Optional[Message]:
        """Load a message with its sender and replied-to message projections."""
        result = await self.db.execute(
            select(Message)
            .where(Message.id == message_id)
            .options(
                selectinload(Message.sender),
                selectinload(Message.reply_to).selectinload(Message.sender),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_conversation_messages(
        self,
        conversation_id: str,
        limit: int,
        cursor: Optional[Cursor] = None,
    ) -> Tuple[List[Message], bool]:
        """
        Get messages older than `cursor`, newest first.

        Ordering is descending (created_at, id) so rows sharing a timestamp
        are neither skipped nor repeated across pages.

        Returns:
            Tuple of (messages, has_more)
        """
        query = select(Message).where(Message.conversation_id == conversation_id)
        if cursor is not None:
            query = query.where(older_than(cursor, Message.created_at, Message.id))

        query = (
            query.options(
                selectinload(Message.sender),
                selectinload(Message.reply_to).selectinload(Message.sender),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit + 1)
            .execution_options(populate_existing=True)
        )

        result = await self.db.execute(query)
        rows = list(result.scalars().all())
        return rows[:limit], len(rows) > limit

    async def get_unread_message_ids(
        self,
        conversation_id: str,
        user_id: str,
        until: Optional[datetime] = None,
    ) -> List[str]:
        """
        Ids of messages `user_id` has not read yet.

        Only non-control messages from other senders are considered, up to
        and including `until` when given.
        """
        has_receipt = exists().where(
            MessageReceipt.message_id == Message.id,
            MessageReceipt.user_id == user_id,
        )
        query = select(Message.id).where(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            Message.content_type != MessageContentType.SIGNAL_KEY_DISTRIBUTION,
            ~has_receipt,
        )
        if until is not None:
            query = query.where(Message.created_at <= until)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_latest_summary_message(
        self,
        conversation_id: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[Message]:
        """Newest non-control message of a conversation."""
        query = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.content_type != MessageContentType.SIGNAL_KEY_DISTRIBUTION,
        )
        if exclude_id is not None:
            query = query.where(Message.id != exclude_id)
        result = await self.db.execute(
            query.order_by(Message.created_at.desc(), Message.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_pending_readers(self, message: Message) -> List[str]:
        """Participants (other than the sender) who had not read `message`."""
        has_receipt = exists().where(
            MessageReceipt.message_id == message.id,
            MessageReceipt.user_id == Participant.user_id,
        )
        result = await self.db.execute(
            select(Participant.user_id).where(
                Participant.conversation_id == message.conversation_id,
                Participant.user_id != message.sender_id,
                Participant.joined_at <= message.created_at,
                ~has_receipt,
            )
        )
        return list(result.scalars().all())


class MessageReceiptRepository:
    """Repository for read receipts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(MessageReceipt)
        if dialect == "sqlite":
            return sqlite_insert(MessageReceipt)
        raise NotImplementedError(f"Receipt upsert not supported on {dialect}")

    async def insert_missing(self, message_ids: Sequence[str], user_id: str) -> int:
        """
        Insert receipts for (message_id, user_id), skipping ones that exist.

        Concurrent inserts of the same receipt are absorbed by
        ON CONFLICT DO NOTHING; only rows actually written are counted.

        Returns:
            Number of receipts newly created
        """
        inserted = 0
        read_at = utc_now()
        ids = list(message_ids)
        for start in range(0, len(ids), RECEIPT_INSERT_CHUNK):
            chunk = ids[start:start + RECEIPT_INSERT_CHUNK]
            stmt = (
                self._insert()
                .values([
                    {"message_id": message_id, "user_id": user_id, "read_at": read_at}
                    for message_id in chunk
                ])
                .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
                .returning(MessageReceipt.message_id)
            )
            result = await self.db.execute(stmt)
            inserted += len(result.all())
        return inserted
