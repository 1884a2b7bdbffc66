"""
Conversation directory: direct conversation get-or-create, group
management and the paginated conversation list.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from parley.models.conversation import Conversation, ConversationType, Participant, ParticipantRole
from parley.models.encryption import IdentityKey
from parley.models.friendship import canonical_pair
from parley.models.message import Message
from parley.repositories.conversation_repo import ConversationRepository, ParticipantRepository
from parley.repositories.user_repo import UserRepository
from parley.utils.pagination import Cursor, clamp_limit, decode_cursor, encode_cursor

logger = logging.getLogger(__name__)

# Attempts for insert-or-read-back loops racing on a unique constraint
MAX_RACE_ATTEMPTS = 3


@dataclass
class ConversationSummary:
    conversation: Conversation
    last_message: Optional[Message]
    unread_count: int


@dataclass
class ConversationPage:
    items: List[ConversationSummary]
    next_cursor: Optional[str]
    has_more: bool


@dataclass
class ParticipantRemoval:
    conversation_id: str
    removed_user_id: str
    conversation_deleted: bool
    remaining_user_ids: List[str] = field(default_factory=list)


class ConversationService:
    """Service for conversation operations with business logic."""

    def __init__(self, db: AsyncSession):
        """
        Initialize conversation service.

        Args:
            db: Database session
        """
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.user_repo = UserRepository(db)

    async def _require_user(self, user_id: str) -> None:
        if not await self.user_repo.exists(user_id):
            raise NotFoundError("User not found")

    async def _require_membership(self, conversation_id: str, user_id: str) -> Participant:
        if not await self.conversation_repo.exists(conversation_id):
            raise NotFoundError("Conversation not found")
        participant = await self.participant_repo.get(conversation_id, user_id)
        if participant is None:
            raise ForbiddenError("You are not a participant in this conversation")
        return participant

    async def _require_group_admin(self, conversation: Conversation, user_id: str) -> None:
        if conversation.type != ConversationType.GROUP:
            raise InvalidArgumentError("Participants can only be managed in group conversations")
        actor = await self.participant_repo.get(conversation.id, user_id)
        if actor is None:
            raise ForbiddenError("You are not a participant in this conversation")
        if actor.role != ParticipantRole.ADMIN:
            raise ForbiddenError("Only group admins can manage participants")

    async def _require_identity_keys(self, user_ids: List[str]) -> None:
        """Every user must have finished key setup before joining a group."""
        result = await self.db.execute(
            select(func.count()).select_from(IdentityKey).where(IdentityKey.user_id.in_(user_ids))
        )
        if result.scalar() != len(user_ids):
            raise InvalidArgumentError("One or more users have not set up encryption keys yet")

    async def materialize_direct(self, user_a: str, user_b: str) -> Tuple[Conversation, bool]:
        """
        Find or create the DIRECT conversation for a pair and make sure both
        participant rows exist. Does not commit.

        Raises:
            IntegrityError: (on flush) when a concurrent transaction created
                the same pair first; callers roll back and read back.
        """
        low, high = canonical_pair(user_a, user_b)
        created = False
        conversation = await self.conversation_repo.find_direct(low, high)
        if conversation is None:
            conversation = await self.conversation_repo.create(
                type=ConversationType.DIRECT,
                participant_a_id=low,
                participant_b_id=high,
            )
            created = True
        await self.participant_repo.ensure(conversation.id, [low, high])
        return conversation, created

    async def get_or_create_conversation(
        self,
        user_id: str,
        other_user_id: str
    ) -> Tuple[Conversation, bool]:
        """
        Get the direct conversation between two users, creating it if needed.

        A concurrent creation of the same pair is absorbed: the loser rolls
        back and returns the winner's row.

        Returns:
            Tuple of (conversation with participants loaded, created)
        """
        if not other_user_id:
            raise InvalidArgumentError("participantId is required")
        if user_id == other_user_id:
            raise InvalidArgumentError("Cannot create a conversation with yourself")
        await self._require_user(other_user_id)

        for attempt in range(MAX_RACE_ATTEMPTS):
            try:
                conversation, created = await self.materialize_direct(user_id, other_user_id)
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.info(
                    f"Direct conversation {user_id}/{other_user_id} created concurrently "
                    f"(attempt {attempt + 1}), reading back"
                )
                continue
            loaded = await self.conversation_repo.get_with_participants(conversation.id)
            return loaded, created

        raise ConflictError("Could not create conversation, please retry")

    async def _resolve_cursor(self, token: Optional[str]) -> Optional[Cursor]:
        if not token:
            return None
        cursor = decode_cursor(token)
        if cursor is None:
            raise InvalidArgumentError("Invalid cursor")
        if cursor.is_degraded:
            conversation = await self.conversation_repo.get(cursor.id)
            if conversation is None:
                raise InvalidArgumentError("Cursor references an unknown conversation")
            cursor = Cursor(id=conversation.id, timestamp=conversation.updated_at)
        return cursor

    async def list_conversations(
        self,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ConversationPage:
        """
        List a user's conversations, most recently active first.

        The last message and unread count of every conversation on the page
        are computed with one query each.
        """
        limit = clamp_limit(limit, settings.conversations_page_size, settings.conversations_page_max)
        resolved = await self._resolve_cursor(cursor)

        conversations, has_more = await self.conversation_repo.get_user_conversations(
            user_id, limit, resolved
        )
        ids = [c.id for c in conversations]
        last_messages = await self.conversation_repo.get_last_messages(ids)
        unread_counts = await self.conversation_repo.get_unread_counts(user_id, ids)

        items = [
            ConversationSummary(
                conversation=c,
                last_message=last_messages.get(c.id),
                unread_count=unread_counts.get(c.id, 0),
            )
            for c in conversations
        ]

        next_cursor = None
        if has_more and conversations:
            tail = conversations[-1]
            next_cursor = encode_cursor(Cursor(id=tail.id, timestamp=tail.updated_at))

        return ConversationPage(items=items, next_cursor=next_cursor, has_more=has_more)

    async def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        await self._require_membership(conversation_id, user_id)
        return await self.conversation_repo.get_with_participants(conversation_id)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> List[str]:
        """
        Delete a conversation with its participants and messages.

        Any participant may delete a direct conversation; groups require ADMIN.

        Returns:
            Ids of the users who were participants (for fan-out)
        """
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        participant = await self.participant_repo.get(conversation_id, user_id)
        if participant is None:
            raise ForbiddenError("You are not a participant in this conversation")
        if conversation.type == ConversationType.GROUP and participant.role != ParticipantRole.ADMIN:
            raise ForbiddenError("Only group admins can delete this group")

        participant_ids = await self.participant_repo.get_participant_ids(conversation_id)
        await self.conversation_repo.delete(conversation_id)
        await self.db.commit()
        logger.info(f"Conversation {conversation_id} deleted by {user_id}")
        return participant_ids

    async def create_group(
        self,
        owner_id: str,
        participant_ids: List[str],
        title: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Conversation:
        """
        Create a group; the owner is always included as ADMIN.

        Raises:
            InvalidArgumentError: too many members, no other member, or a
                member without key material
            NotFoundError: an unknown user id
        """
        member_ids = list(dict.fromkeys([owner_id, *participant_ids]))
        if len(member_ids) < 2:
            raise InvalidArgumentError("A group needs at least one other participant")
        if len(member_ids) > settings.group_max_participants:
            raise InvalidArgumentError("Group size limit exceeded")

        found = {u.id for u in await self.user_repo.get_many(member_ids)}
        missing = [uid for uid in member_ids if uid not in found]
        if missing:
            raise NotFoundError(f"Unknown users: {', '.join(missing)}")
        await self._require_identity_keys(member_ids)

        conversation = await self.conversation_repo.create(
            type=ConversationType.GROUP,
            title=title or None,
            avatar_url=avatar_url or None,
        )
        for uid in member_ids:
            self.db.add(Participant(
                conversation_id=conversation.id,
                user_id=uid,
                role=ParticipantRole.ADMIN if uid == owner_id else ParticipantRole.MEMBER,
            ))
        await self.db.commit()

        logger.info(f"Group {conversation.id} created by {owner_id} with {len(member_ids)} members")
        return await self.conversation_repo.get_with_participants(conversation.id)

    async def add_participant(self, conversation_id: str, actor_id: str, user_id: str) -> Participant:
        """Admin-only: add a user (who must have key material) to a group."""
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        await self._require_group_admin(conversation, actor_id)
        await self._require_user(user_id)
        if await self.participant_repo.is_member(conversation_id, user_id):
            raise ConflictError("User is already a participant")
        if await self.participant_repo.count(conversation_id) >= settings.group_max_participants:
            raise InvalidArgumentError("Group size limit exceeded")
        await self._require_identity_keys([user_id])

        try:
            await self.participant_repo.add(conversation_id, user_id)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("User is already a participant")

        return await self.participant_repo.get(conversation_id, user_id, with_user=True)

    async def remove_participant(
        self,
        conversation_id: str,
        actor_id: str,
        user_id: str
    ) -> ParticipantRemoval:
        """
        Remove a participant. Admins may remove anyone; everyone may remove
        themselves. Removing the last participant deletes the conversation;
        if the last admin leaves, the longest-standing member is promoted.
        """
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if conversation.type != ConversationType.GROUP:
            raise InvalidArgumentError("Participants can only be managed in group conversations")

        if actor_id != user_id:
            await self._require_group_admin(conversation, actor_id)
        elif not await self.participant_repo.is_member(conversation_id, actor_id):
            raise ForbiddenError("You are not a participant in this conversation")

        if not await self.participant_repo.remove(conversation_id, user_id):
            raise NotFoundError("User is not a participant")

        remaining = await self.participant_repo.list_with_users(conversation_id)
        if not remaining:
            await self.conversation_repo.delete(conversation_id)
            await self.db.commit()
            logger.info(f"Conversation {conversation_id} deleted after its last participant left")
            return ParticipantRemoval(conversation_id, user_id, conversation_deleted=True)

        if not any(p.role == ParticipantRole.ADMIN for p in remaining):
            remaining[0].role = ParticipantRole.ADMIN
        await self.db.commit()

        return ParticipantRemoval(
            conversation_id,
            user_id,
            conversation_deleted=False,
            remaining_user_ids=[p.user_id for p in remaining],
        )

    async def list_participants(self, conversation_id: str, user_id: str) -> List[Participant]:
        await self._require_membership(conversation_id, user_id)
        return await self.participant_repo.list_with_users(conversation_id)
