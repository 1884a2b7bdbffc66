"""
Message API routes.
Send, page through, edit, delete and mark messages read.
"""
from fastapi import APIRouter, Depends, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.database import get_db
from parley.core.websocket import connection_manager
from parley.dependencies import get_current_user, get_pagination_params
from parley.models.user import User
from parley.schemas.message import (
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageDeleteResponse,
    MessageListResponse,
    MessageResponse,
    MessageSendResponse,
    MessageUpdate,
)
from parley.services.message_service import MessageService

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get(
    "/{conversation_id}",
    response_model=MessageListResponse,
    summary="Get conversation messages",
    description="Keyset-paginated history, each page ordered oldest to newest."
)
async def list_messages(
    conversation_id: str,
    pagination: dict = Depends(get_pagination_params),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    page = await MessageService(db).list_messages(
        conversation_id,
        current_user.id,
        limit=pagination["limit"],
        cursor=pagination["cursor"],
    )
    return MessageListResponse(
        data=[MessageResponse.model_validate(m) for m in page.messages],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.post(
    "/{conversation_id}",
    response_model=MessageSendResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message"
)
@limiter.limit(settings.message_rate_limit)
async def send_message(
    request: Request,
    conversation_id: str,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Send a message to a conversation the caller participates in.

    - **content**: text, or base64 ciphertext for SIGNAL_* types
    - **contentType**: TEXT, SIGNAL_ENCRYPTED or SIGNAL_KEY_DISTRIBUTION
    - **attachmentUrl**: required when there is no content
    - **replyToId**: message in the same conversation
    """
    delivery = await MessageService(db).create_message(
        sender_id=current_user.id,
        conversation_id=conversation_id,
        content=data.content,
        content_type=data.content_type,
        attachment_url=data.attachment_url,
        reply_to_id=data.reply_to_id,
    )
    await connection_manager.broadcast_new_message(delivery)
    return MessageSendResponse(
        **MessageResponse.model_validate(delivery.message).model_dump(),
        unread_counts=delivery.unread_counts,
    )


@router.post(
    "/{conversation_id}/read",
    response_model=MarkReadResponse,
    summary="Mark messages as read"
)
async def mark_as_read(
    conversation_id: str,
    data: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await MessageService(db).mark_as_read(
        current_user.id, conversation_id, data.last_read_message_id
    )
    await connection_manager.broadcast_read(result)
    return MarkReadResponse(marked=result.marked, new_unread_count=result.new_unread_count)


@router.put("/{message_id}", response_model=MessageResponse, summary="Edit a message")
async def edit_message(
    message_id: str,
    data: MessageUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await MessageService(db).edit_message(message_id, current_user.id, data.content)
    await connection_manager.broadcast_message_edited(result)
    return result.message


@router.delete("/{message_id}", response_model=MessageDeleteResponse, summary="Delete a message")
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await MessageService(db).delete_message(message_id, current_user.id)
    await connection_manager.broadcast_message_deleted(result)
    return MessageDeleteResponse(id=result.message_id, conversation_id=result.conversation_id)
