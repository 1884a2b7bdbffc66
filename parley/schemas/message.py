"""
Pydantic schemas for message requests and responses.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from parley.models.message import MessageContentType
from parley.schemas.user import UserPublic


# ============================================================================
# Request Schemas
# ============================================================================

class MessageCreate(BaseModel):
    """Schema for sending a message. Content rules are enforced by the ledger."""

    content: Optional[str] = Field(None, max_length=65536, description="Plaintext or base64 ciphertext")
    content_type: MessageContentType = Field(
        default=MessageContentType.TEXT,
        alias="contentType",
        description="TEXT, SIGNAL_ENCRYPTED or SIGNAL_KEY_DISTRIBUTION"
    )
    attachment_url: Optional[str] = Field(None, alias="attachmentUrl", max_length=500)
    reply_to_id: Optional[str] = Field(None, alias="replyToId", description="Message being replied to")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "content": "Hello, how are you?",
                "contentType": "TEXT",
                "attachmentUrl": None,
                "replyToId": None,
            }
        },
    )


class MessageUpdate(BaseModel):
    content: str = Field(..., max_length=65536, description="Replacement content")


class MarkReadRequest(BaseModel):
    last_read_message_id: Optional[str] = Field(
        None,
        alias="lastReadMessageId",
        description="Inclusive boundary; omit to mark everything read"
    )

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Response Schemas
# ============================================================================

class MessagePreview(BaseModel):
    """Compact message projection used for replies and conversation summaries."""

    id: str
    sender_id: str = Field(serialization_alias="senderId")
    content: Optional[str] = None
    content_type: MessageContentType = Field(serialization_alias="contentType")
    attachment_url: Optional[str] = Field(None, serialization_alias="attachmentUrl")
    created_at: datetime = Field(serialization_alias="createdAt")
    sender: Optional[UserPublic] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MessageResponse(BaseModel):
    """Schema for message response with sender and replied-to projections."""

    id: str
    conversation_id: str = Field(serialization_alias="conversationId")
    sender_id: str = Field(serialization_alias="senderId")
    content: Optional[str] = None
    content_type: MessageContentType = Field(serialization_alias="contentType")
    attachment_url: Optional[str] = Field(None, serialization_alias="attachmentUrl")
    reply_to_id: Optional[str] = Field(None, serialization_alias="replyToId")
    edited_at: Optional[datetime] = Field(None, serialization_alias="editedAt")
    deleted: bool = False
    created_at: datetime = Field(serialization_alias="createdAt")
    sender: Optional[UserPublic] = None
    reply_to: Optional[MessagePreview] = Field(None, serialization_alias="replyTo")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MessageListResponse(BaseModel):
    """One page of history, oldest first."""

    data: List[MessageResponse]
    next_cursor: Optional[str] = Field(None, serialization_alias="nextCursor")
    has_more: bool = Field(False, serialization_alias="hasMore")


class MessageSendResponse(MessageResponse):
    unread_counts: dict = Field(default_factory=dict, serialization_alias="unreadCounts")


class MarkReadResponse(BaseModel):
    marked: int
    new_unread_count: int = Field(serialization_alias="newUnreadCount")


class MessageDeleteResponse(BaseModel):
    id: str
    conversation_id: str = Field(serialization_alias="conversationId")
