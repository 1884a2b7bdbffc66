"""
Message ledger: create, edit, delete and read-receipt operations.

Every operation that touches unread counters runs as one transaction:
the message row, the per-recipient counter updates and the conversation's
last-message pointer commit together or not at all. Control messages
(key distribution) are stored and delivered but never move counters or
the last-message pointer.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.errors import ForbiddenError, InvalidArgumentError, NotFoundError
from parley.models.conversation import Conversation, ConversationType
from parley.models.message import Message, MessageContentType
from parley.repositories.conversation_repo import ConversationRepository, ParticipantRepository
from parley.repositories.message_repo import MessageReceiptRepository, MessageRepository
from parley.services.block_service import BlockService
from parley.utils.datetime_utils import utc_now
from parley.utils.pagination import Cursor, clamp_limit, decode_cursor, encode_cursor
from parley.utils.validators import validate_signal_payload

logger = logging.getLogger(__name__)


@dataclass
class MessageDelivery:
    """Outcome of create_message, enough to fan out without another read."""
    message: Message
    participant_ids: List[str]
    recipient_ids: List[str]
    unread_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def is_control(self) -> bool:
        return self.message.content_type.is_control


@dataclass
class ReadResult:
    conversation_id: str
    user_id: str
    marked: int
    new_unread_count: int
    last_read_message_id: Optional[str] = None


@dataclass
class MessageEdit:
    message: Message
    participant_ids: List[str]


@dataclass
class MessageDeletion:
    message_id: str
    conversation_id: str
    participant_ids: List[str]
    unread_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class MessagePage:
    messages: List[Message]
    next_cursor: Optional[str]
    has_more: bool


def parse_content_type(value) -> MessageContentType:
    if value is None:
        return MessageContentType.TEXT
    try:
        return MessageContentType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in MessageContentType)
        raise InvalidArgumentError(f"Invalid contentType. Allowed: {allowed}")


class MessageService:
    """Service for message operations with business logic."""

    def __init__(self, db: AsyncSession):
        """
        Initialize message service.

        Args:
            db: Database session
        """
        self.db = db
        self.message_repo = MessageRepository(db)
        self.receipt_repo = MessageReceiptRepository(db)
        self.conversation_repo = ConversationRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.block_service = BlockService(db)

    async def _get_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    async def _get_own_message(self, message_id: str, user_id: str, action: str) -> Message:
        message = await self.message_repo.get(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise ForbiddenError(f"You can only {action} your own messages")
        return message

    async def _check_direct_block(self, conversation: Conversation, sender_id: str) -> None:
        other_id = (
            conversation.participant_b_id
            if conversation.participant_a_id == sender_id
            else conversation.participant_a_id
        )
        if other_id and await self.block_service.is_blocked(sender_id, other_id):
            raise ForbiddenError("You cannot send messages to this user")

    async def create_message(
        self,
        sender_id: str,
        conversation_id: str,
        content: Optional[str] = None,
        content_type: MessageContentType | str | None = MessageContentType.TEXT,
        attachment_url: Optional[str] = None,
        reply_to_id: Optional[str] = None,
    ) -> MessageDelivery:
        """
        Store a message and bump unread counters of every other participant.

        Args:
            sender_id: Author
            conversation_id: Target conversation
            content: Plaintext or base64 ciphertext
            content_type: TEXT, SIGNAL_ENCRYPTED or SIGNAL_KEY_DISTRIBUTION
            attachment_url: Optional attachment
            reply_to_id: Optional message (same conversation) being replied to

        Returns:
            MessageDelivery with the stored message (sender and replied-to
            message loaded) and post-update unread counts per recipient

        Raises:
            InvalidArgumentError: no content and no attachment, bad reply target
            SecurityViolationError: ciphertext that is not base64
            NotFoundError: conversation does not exist
            ForbiddenError: sender is not a participant, or a block exists
        """
        content_type = parse_content_type(content_type)
        if not content and not attachment_url and not content_type.is_control:
            raise InvalidArgumentError("Message must have content or an attachment")
        if content_type.is_encrypted and content:
            validate_signal_payload(content)

        conversation = await self._get_conversation(conversation_id)
        participant_ids = await self.participant_repo.get_participant_ids(conversation_id)
        if sender_id not in participant_ids:
            raise ForbiddenError("You are not a participant in this conversation")
        if conversation.type == ConversationType.DIRECT:
            await self._check_direct_block(conversation, sender_id)

        if reply_to_id:
            replied = await self.message_repo.get(reply_to_id)
            if replied is None or replied.conversation_id != conversation_id:
                raise InvalidArgumentError("Reply target must be a message in this conversation")

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content or None,
            content_type=content_type,
            attachment_url=attachment_url or None,
            reply_to_id=reply_to_id or None,
        )
        self.db.add(message)
        await self.db.flush()

        recipient_ids = [uid for uid in participant_ids if uid != sender_id]
        unread_counts: Dict[str, int] = {}
        if not content_type.is_control:
            await self.participant_repo.increment_unread(conversation_id, recipient_ids)
            await self.db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(last_message_id=message.id, updated_at=message.created_at)
            )
            unread_counts = await self.participant_repo.get_unread_counts(conversation_id, recipient_ids)

        await self.db.commit()

        stored = await self.message_repo.get_with_relations(message.id)
        return MessageDelivery(
            message=stored,
            participant_ids=participant_ids,
            recipient_ids=recipient_ids,
            unread_counts=unread_counts,
        )

    async def mark_as_read(
        self,
        user_id: str,
        conversation_id: str,
        last_read_message_id: Optional[str] = None,
    ) -> ReadResult:
        """
        Mark messages as read up to (and including) `last_read_message_id`,
        or every message when no boundary is given.

        Receipt insertion is duplicate-safe, so repeating the call, or racing
        another device of the same user, marks nothing twice.

        Returns:
            ReadResult with the number newly marked and the new unread count
        """
        await self._get_conversation(conversation_id)
        participant = await self.participant_repo.get(conversation_id, user_id)
        if participant is None:
            raise ForbiddenError("You are not a participant in this conversation")

        until = None
        if last_read_message_id:
            boundary = await self.message_repo.get(last_read_message_id)
            if boundary is None or boundary.conversation_id != conversation_id:
                raise InvalidArgumentError("lastReadMessageId does not belong to this conversation")
            until = boundary.created_at

        unread_ids = await self.message_repo.get_unread_message_ids(
            conversation_id, user_id, until=until
        )

        marked = 0
        if unread_ids:
            marked = await self.receipt_repo.insert_missing(unread_ids, user_id)
            await self.participant_repo.decrement_unread(conversation_id, [user_id], marked)

        new_count = await self.participant_repo.get_unread_count(conversation_id, user_id)
        await self.db.commit()

        return ReadResult(
            conversation_id=conversation_id,
            user_id=user_id,
            marked=marked,
            new_unread_count=new_count,
            last_read_message_id=last_read_message_id,
        )

    async def edit_message(self, message_id: str, user_id: str, new_content: Optional[str]) -> MessageEdit:
        """Replace the content of one's own message. Unread counts are untouched."""
        if not new_content or not new_content.strip():
            raise InvalidArgumentError("Content cannot be empty")

        message = await self._get_own_message(message_id, user_id, "edit")
        if message.content_type.is_encrypted:
            validate_signal_payload(new_content)

        message.content = new_content
        message.edited_at = utc_now()
        participant_ids = await self.participant_repo.get_participant_ids(message.conversation_id)
        await self.db.commit()

        return MessageEdit(
            message=await self.message_repo.get_with_relations(message_id),
            participant_ids=participant_ids,
        )

    async def delete_message(self, message_id: str, user_id: str) -> MessageDeletion:
        """
        Hard-delete one's own message.

        Participants who had not read it get their unread count lowered, and
        the conversation's last-message pointer moves to the newest
        remaining message when it pointed at this one.
        """
        message = await self._get_own_message(message_id, user_id, "delete")
        conversation_id = message.conversation_id
        participant_ids = await self.participant_repo.get_participant_ids(conversation_id)

        unread_counts: Dict[str, int] = {}
        if not message.content_type.is_control:
            pending_readers = await self.message_repo.get_pending_readers(message)
            await self.participant_repo.decrement_unread(conversation_id, pending_readers, 1)

            conversation = await self._get_conversation(conversation_id)
            if conversation.last_message_id == message_id:
                previous = await self.message_repo.get_latest_summary_message(
                    conversation_id, exclude_id=message_id
                )
                await self.db.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id)
                    .values(
                        last_message_id=previous.id if previous else None,
                        updated_at=conversation.updated_at,
                    )
                )
            unread_counts = await self.participant_repo.get_unread_counts(conversation_id, pending_readers)

        await self.message_repo.delete(message_id)
        await self.db.commit()

        logger.info(f"Message {message_id} deleted from conversation {conversation_id}")
        return MessageDeletion(
            message_id=message_id,
            conversation_id=conversation_id,
            participant_ids=participant_ids,
            unread_counts=unread_counts,
        )

    async def _resolve_cursor(self, conversation_id: str, token: Optional[str]) -> Optional[Cursor]:
        if not token:
            return None
        cursor = decode_cursor(token)
        if cursor is None:
            raise InvalidArgumentError("Invalid cursor")
        if cursor.is_degraded:
            anchor = await self.message_repo.get(cursor.id)
            if anchor is None or anchor.conversation_id != conversation_id:
                raise InvalidArgumentError("Cursor references a message outside this conversation")
            cursor = Cursor(id=anchor.id, timestamp=anchor.created_at)
        return cursor

    async def list_messages(
        self,
        conversation_id: str,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MessagePage:
        """
        Page backwards through a conversation's history.

        Each page is returned oldest to newest; `next_cursor` points at the
        oldest message of the page.
        """
        await self._get_conversation(conversation_id)
        if not await self.participant_repo.is_member(conversation_id, user_id):
            raise ForbiddenError("You are not a participant in this conversation")

        limit = clamp_limit(limit, settings.messages_page_size, settings.messages_page_max)
        resolved = await self._resolve_cursor(conversation_id, cursor)
        messages, has_more = await self.message_repo.get_conversation_messages(
            conversation_id, limit, resolved
        )

        next_cursor = None
        if has_more and messages:
            oldest = messages[-1]
            next_cursor = encode_cursor(Cursor(id=oldest.id, timestamp=oldest.created_at))

        return MessagePage(messages=list(reversed(messages)), next_cursor=next_cursor, has_more=has_more)
