"""
Conversation API routes.
Direct conversations, groups and group membership.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.database import get_db
from parley.core.websocket import connection_manager
from parley.dependencies import get_current_user, get_pagination_params
from parley.models.user import User
from parley.schemas.conversation import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    GroupCreate,
    ParticipantAdd,
    ParticipantResponse,
)
from parley.schemas.message import MessagePreview
from parley.services.conversation_service import ConversationService

router = APIRouter()


@router.post(
    "",
    response_model=ConversationResponse,
    summary="Get or create a direct conversation",
    responses={201: {"description": "Conversation created"}}
)
async def get_or_create_conversation(
    data: ConversationCreate,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Return the direct conversation with `participantId`, creating it (201)
    when the pair has none yet.
    """
    conversation, created = await ConversationService(db).get_or_create_conversation(
        current_user.id, data.participant_id
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
        await connection_manager.broadcast_conversation_created(
            conversation, [current_user.id, data.participant_id]
        )
    return conversation


@router.get("", response_model=ConversationListResponse, summary="List conversations")
async def list_conversations(
    pagination: dict = Depends(get_pagination_params),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Conversations ordered by latest activity, each with its last message and
    the caller's unread count. Follow `nextCursor` for older pages.
    """
    page = await ConversationService(db).list_conversations(
        current_user.id,
        limit=pagination["limit"],
        cursor=pagination["cursor"],
    )
    return ConversationListResponse(
        data=[
            ConversationSummaryResponse(
                **ConversationResponse.model_validate(item.conversation).model_dump(),
                last_message=(
                    MessagePreview.model_validate(item.last_message)
                    if item.last_message is not None else None
                ),
                unread_count=item.unread_count,
            )
            for item in page.items
        ],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.post(
    "/group",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a group"
)
async def create_group(
    data: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a group owned by the caller. Every member must have uploaded an
    identity key.
    """
    conversation = await ConversationService(db).create_group(
        owner_id=current_user.id,
        participant_ids=data.participant_ids,
        title=data.title,
        avatar_url=data.avatar_url,
    )
    invited = [p.user_id for p in conversation.participants if p.user_id != current_user.id]
    await connection_manager.broadcast_conversation_invite(conversation, invited, current_user.id)
    return conversation


@router.get("/{conversation_id}", response_model=ConversationResponse, summary="Get a conversation")
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ConversationService(db).get_conversation(conversation_id, current_user.id)


@router.delete("/{conversation_id}", summary="Delete a conversation")
async def delete_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    participant_ids = await ConversationService(db).delete_conversation(conversation_id, current_user.id)
    await connection_manager.broadcast_conversation_deleted(conversation_id, participant_ids, current_user.id)
    return {"success": True, "conversationId": conversation_id}


@router.get(
    "/{conversation_id}/participants",
    response_model=List[ParticipantResponse],
    summary="List participants"
)
async def list_participants(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ConversationService(db).list_participants(conversation_id, current_user.id)


@router.post(
    "/{conversation_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a participant (admins only)"
)
async def add_participant(
    conversation_id: str,
    data: ParticipantAdd,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    participant = await service.add_participant(conversation_id, current_user.id, data.user_id)

    conversation = await service.conversation_repo.get_with_participants(conversation_id)
    member_ids = [p.user_id for p in conversation.participants]
    await connection_manager.broadcast_participant_added(participant, current_user.id, member_ids)
    await connection_manager.broadcast_conversation_invite(conversation, [data.user_id], current_user.id)
    return participant


@router.delete(
    "/{conversation_id}/participants/{user_id}",
    summary="Remove a participant (admins, or yourself)"
)
async def remove_participant(
    conversation_id: str,
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    removal = await ConversationService(db).remove_participant(conversation_id, current_user.id, user_id)
    await connection_manager.broadcast_participant_removed(removal, current_user.id)
    return {
        "success": True,
        "conversationId": conversation_id,
        "conversationDeleted": removal.conversation_deleted,
    }
