"""
Friendship state machine.

PENDING -> ACCEPTED | DECLINED | CANCELLED | BLOCKED, any state -> BLOCKED,
BLOCKED -> ACCEPTED (unblock, blocker only). Accepting a request
materializes the direct conversation for the pair in the same transaction.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from parley.models.conversation import Conversation
from parley.models.friendship import Friendship, FriendshipStatus, make_pair_key
from parley.repositories.friendship_repo import FriendshipRepository
from parley.repositories.user_repo import UserRepository
from parley.services.block_service import BlockService
from parley.services.conversation_service import MAX_RACE_ATTEMPTS, ConversationService
from parley.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class FriendshipOutcome:
    friendship: Friendship
    conversation: Optional[Conversation] = None
    conversation_created: bool = False


class FriendService:
    """Service for friend requests and blocks."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.friendship_repo = FriendshipRepository(db)
        self.user_repo = UserRepository(db)
        self.block_service = BlockService(db)
        self.conversation_service = ConversationService(db)

    async def _outcome(
        self,
        friendship_id: str,
        conversation_id: Optional[str] = None,
        created: bool = False,
    ) -> FriendshipOutcome:
        friendship = await self.friendship_repo.get_with_users(friendship_id)
        conversation = None
        if conversation_id:
            conversation = await self.conversation_service.conversation_repo.get_with_participants(
                conversation_id
            )
        return FriendshipOutcome(friendship, conversation, created)

    async def _get_request(self, friendship_id: str) -> Friendship:
        friendship = await self.friendship_repo.get_for_update(friendship_id)
        if friendship is None:
            raise NotFoundError("Friend request not found")
        return friendship

    async def add_friend(self, requester_id: str, friend_code: str) -> FriendshipOutcome:
        """
        Send a friend request by friend code.

        If the target already has a pending request to the caller, the two
        requests collapse into an acceptance. A request created concurrently
        by the other side is detected through the unique pair key and
        resolved the same way.

        Raises:
            InvalidArgumentError: missing code or self-add
            NotFoundError: no user with that code
            ConflictError: already friends, or request already sent
            ForbiddenError: a block exists between the users
        """
        if not friend_code or not friend_code.strip():
            raise InvalidArgumentError("friendCode is required")

        target = await self.user_repo.get_by_friend_code(friend_code)
        if target is None:
            raise NotFoundError("No user with that friend code")
        target_id = target.id
        if target_id == requester_id:
            raise InvalidArgumentError("You cannot add yourself as a friend")

        existing = await self.friendship_repo.find_between(requester_id, target_id)
        if existing is not None:
            return await self._resolve_existing(existing, requester_id, target_id)

        try:
            friendship = await self.friendship_repo.create(
                requester_id=requester_id,
                addressee_id=target_id,
                pair_key=make_pair_key(requester_id, target_id),
                status=FriendshipStatus.PENDING,
            )
            friendship_id = friendship.id
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Friend request {requester_id}->{target_id} raced, reading back")
            existing = await self.friendship_repo.find_between(requester_id, target_id)
            if existing is None:
                raise ConflictError("Could not send friend request, please retry")
            return await self._resolve_existing(existing, requester_id, target_id, racing=True)

        logger.info(f"Friend request {friendship_id} sent by {requester_id}")
        return await self._outcome(friendship_id)

    async def _resolve_existing(
        self,
        friendship: Friendship,
        requester_id: str,
        target_id: str,
        racing: bool = False,
    ) -> FriendshipOutcome:
        status = friendship.status

        if status == FriendshipStatus.BLOCKED:
            raise ForbiddenError("You cannot send a friend request to this user")
        if status == FriendshipStatus.ACCEPTED:
            raise ConflictError("You are already friends")

        if status == FriendshipStatus.PENDING:
            if friendship.addressee_id == requester_id:
                return await self.accept_friend_request(friendship.id, requester_id)
            if racing:
                # Our own request won on another connection.
                return await self._outcome(friendship.id)
            raise ConflictError("Friend request already sent")

        # DECLINED or CANCELLED: reopen the row as a fresh request.
        friendship_id = friendship.id
        friendship.requester_id = requester_id
        friendship.addressee_id = target_id
        friendship.status = FriendshipStatus.PENDING
        friendship.accepted_at = None
        await self.db.commit()
        return await self._outcome(friendship_id)

    async def accept_friend_request(self, friendship_id: str, user_id: str) -> FriendshipOutcome:
        """
        Accept a pending request and materialize the direct conversation.

        Accepting an already ACCEPTED request again is a success returning
        the same conversation. When another transaction creates the
        conversation first, this one rolls back, re-reads and adopts it.

        Raises:
            NotFoundError: no such request
            ForbiddenError: caller is not the addressee (or, once accepted,
                the requester)
            ConflictError: request is no longer pending
        """
        for attempt in range(MAX_RACE_ATTEMPTS):
            friendship = await self._get_request(friendship_id)
            # Only the addressee moves a request out of PENDING; either party
            # may re-confirm one that is already ACCEPTED.
            reconfirm = (
                friendship.status == FriendshipStatus.ACCEPTED
                and friendship.requester_id == user_id
            )
            if friendship.addressee_id != user_id and not reconfirm:
                raise ForbiddenError("Only the recipient can accept this friend request")

            if friendship.status == FriendshipStatus.PENDING:
                friendship.status = FriendshipStatus.ACCEPTED
                friendship.accepted_at = utc_now()
            elif friendship.status != FriendshipStatus.ACCEPTED:
                raise ConflictError(f"Friend request is {friendship.status.value.lower()}")

            requester_id, addressee_id = friendship.requester_id, friendship.addressee_id
            try:
                conversation, created = await self.conversation_service.materialize_direct(
                    requester_id, addressee_id
                )
                conversation_id = conversation.id
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.info(
                    f"Conversation for friendship {friendship_id} created concurrently "
                    f"(attempt {attempt + 1}), retrying"
                )
                continue

            if created:
                logger.info(f"Friendship {friendship_id} accepted, conversation {conversation_id} created")
            return await self._outcome(friendship_id, conversation_id, created)

        raise ConflictError("Could not accept friend request, please retry")

    async def decline_friend_request(self, friendship_id: str, user_id: str) -> Friendship:
        friendship = await self._get_request(friendship_id)
        if friendship.addressee_id != user_id:
            raise ForbiddenError("Only the recipient can decline this friend request")
        if friendship.status != FriendshipStatus.PENDING:
            raise ConflictError(f"Friend request is {friendship.status.value.lower()}")

        friendship.status = FriendshipStatus.DECLINED
        await self.db.commit()
        return (await self._outcome(friendship_id)).friendship

    async def cancel_friend_request(self, friendship_id: str, user_id: str) -> Friendship:
        friendship = await self._get_request(friendship_id)
        if friendship.requester_id != user_id:
            raise ForbiddenError("Only the sender can cancel this friend request")
        if friendship.status != FriendshipStatus.PENDING:
            raise ConflictError(f"Friend request is {friendship.status.value.lower()}")

        friendship.status = FriendshipStatus.CANCELLED
        await self.db.commit()
        return (await self._outcome(friendship_id)).friendship

    async def block_user(self, me_id: str, target_id: str) -> Friendship:
        """
        Block a user whatever the current relationship is.

        The blocker becomes the row's requester. Blocking an already blocked
        pair leaves the row (and its blocker) unchanged.
        """
        if not target_id or target_id == me_id:
            raise InvalidArgumentError("You cannot block yourself")
        if not await self.user_repo.exists(target_id):
            raise NotFoundError("User not found")

        for attempt in range(MAX_RACE_ATTEMPTS):
            friendship = await self.friendship_repo.find_between(me_id, target_id)
            if friendship is None:
                try:
                    friendship = await self.friendship_repo.create(
                        requester_id=me_id,
                        addressee_id=target_id,
                        pair_key=make_pair_key(me_id, target_id),
                        status=FriendshipStatus.BLOCKED,
                    )
                    friendship_id = friendship.id
                    await self.db.commit()
                except IntegrityError:
                    await self.db.rollback()
                    logger.info(f"Block {me_id}->{target_id} raced (attempt {attempt + 1}), retrying")
                    continue
            else:
                friendship_id = friendship.id
                if friendship.status != FriendshipStatus.BLOCKED:
                    friendship.requester_id = me_id
                    friendship.addressee_id = target_id
                    friendship.status = FriendshipStatus.BLOCKED
                    await self.db.commit()

            logger.info(f"User {target_id} blocked by {me_id}")
            return (await self._outcome(friendship_id)).friendship

        raise ConflictError("Could not block user, please retry")

    async def unblock_user(self, me_id: str, target_id: str) -> Friendship:
        """
        Lift a block imposed by the caller; the pair becomes friends again.

        Raises:
            NotFoundError: no block exists between the users
            ForbiddenError: the block was imposed by the other user
        """
        if not await self.block_service.is_blocked(me_id, target_id):
            raise NotFoundError("No block exists for this user")

        friendship = await self.friendship_repo.find_between(me_id, target_id)
        if friendship.requester_id != me_id:
            raise ForbiddenError("Only the user who imposed the block can lift it")

        friendship_id = friendship.id
        friendship.status = FriendshipStatus.ACCEPTED
        friendship.accepted_at = utc_now()
        await self.db.commit()
        return (await self._outcome(friendship_id)).friendship

    async def list_friends(self, user_id: str) -> List[Friendship]:
        return await self.friendship_repo.list_accepted(user_id)

    async def list_requests(self, user_id: str) -> Tuple[List[Friendship], List[Friendship]]:
        """Pending requests split into (incoming, outgoing)."""
        pending = await self.friendship_repo.list_pending(user_id)
        incoming = [f for f in pending if f.addressee_id == user_id]
        outgoing = [f for f in pending if f.requester_id == user_id]
        return incoming, outgoing
