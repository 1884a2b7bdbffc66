"""
Friend API routes.
Friend requests by friend code, acceptance, and blocking.
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.database import get_db
from parley.core.websocket import connection_manager
from parley.dependencies import get_current_user
from parley.models.user import User
from parley.schemas.conversation import ConversationResponse
from parley.schemas.friendship import (
    FriendRequestCreate,
    FriendRequestsResponse,
    FriendResponse,
    FriendshipActionResponse,
    FriendshipResponse,
)
from parley.schemas.user import UserPublic
from parley.services.friend_service import FriendService, FriendshipOutcome

router = APIRouter()


async def _action_response(outcome: FriendshipOutcome) -> FriendshipActionResponse:
    """Announce a materialized conversation to both users and build the response."""
    if outcome.conversation is not None:
        friendship = outcome.friendship
        await connection_manager.broadcast_conversation_created(
            outcome.conversation,
            [friendship.requester_id, friendship.addressee_id],
        )
    return FriendshipActionResponse(
        friendship=FriendshipResponse.model_validate(outcome.friendship),
        conversation=(
            ConversationResponse.model_validate(outcome.conversation)
            if outcome.conversation is not None else None
        ),
        conversation_created=outcome.conversation_created,
    )


@router.get("", response_model=List[FriendResponse], summary="List friends")
async def list_friends(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    friendships = await FriendService(db).list_friends(current_user.id)
    return [
        FriendResponse(
            friendship_id=f.id,
            since=f.accepted_at,
            user=UserPublic.model_validate(
                f.addressee if f.requester_id == current_user.id else f.requester
            ),
        )
        for f in friendships
    ]


@router.get("/requests", response_model=FriendRequestsResponse, summary="Pending friend requests")
async def list_requests(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    incoming, outgoing = await FriendService(db).list_requests(current_user.id)
    return FriendRequestsResponse(
        incoming=[FriendshipResponse.model_validate(f) for f in incoming],
        outgoing=[FriendshipResponse.model_validate(f) for f in outgoing],
    )


@router.post(
    "",
    response_model=FriendshipActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a friend request"
)
async def add_friend(
    data: FriendRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Send a friend request by friend code.

    If the other user already asked you, this accepts their request and the
    response includes the new conversation.
    """
    outcome = await FriendService(db).add_friend(current_user.id, data.friend_code)
    return await _action_response(outcome)


@router.post("/{friendship_id}/accept", response_model=FriendshipActionResponse, summary="Accept a request")
async def accept_request(
    friendship_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept a friend request and open the direct conversation.

    Only the addressee can accept a pending request; the requester's accept
    is refused with 403 until then. Once the addressee has accepted, either
    side may call this again and gets the same conversation back.
    """
    outcome = await FriendService(db).accept_friend_request(friendship_id, current_user.id)
    return await _action_response(outcome)


@router.post("/{friendship_id}/decline", response_model=FriendshipResponse, summary="Decline a request")
async def decline_request(
    friendship_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await FriendService(db).decline_friend_request(friendship_id, current_user.id)


@router.post("/{friendship_id}/cancel", response_model=FriendshipResponse, summary="Cancel a sent request")
async def cancel_request(
    friendship_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await FriendService(db).cancel_friend_request(friendship_id, current_user.id)


@router.post("/{user_id}/block", response_model=FriendshipResponse, summary="Block a user")
async def block_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await FriendService(db).block_user(current_user.id, user_id)


@router.post("/{user_id}/unblock", response_model=FriendshipResponse, summary="Unblock a user")
async def unblock_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await FriendService(db).unblock_user(current_user.id, user_id)
