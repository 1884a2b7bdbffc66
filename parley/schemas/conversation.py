"""
Pydantic schemas for conversations and participants.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from parley.models.conversation import ConversationType, ParticipantRole
from parley.schemas.message import MessagePreview
from parley.schemas.user import UserPublic


# ============================================================================
# Request Schemas
# ============================================================================

class ConversationCreate(BaseModel):
    """Get-or-create the direct conversation with another user."""

    participant_id: str = Field(..., alias="participantId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class GroupCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255, description="Group title")
    participant_ids: List[str] = Field(..., alias="participantIds", min_length=1)
    avatar_url: Optional[str] = Field(None, alias="avatarUrl", max_length=500)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Weekend trip",
                "participantIds": ["123e4567-e89b-12d3-a456-426614174000"],
            }
        },
    )

    @field_validator("participant_ids")
    @classmethod
    def strip_blank_ids(cls, v: List[str]) -> List[str]:
        ids = [i.strip() for i in v if i and i.strip()]
        if not ids:
            raise ValueError("At least one participant is required")
        return ids


class ParticipantAdd(BaseModel):
    user_id: str = Field(..., alias="userId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Response Schemas
# ============================================================================

class ParticipantResponse(BaseModel):
    user_id: str = Field(serialization_alias="userId")
    role: ParticipantRole
    unread_count: int = Field(serialization_alias="unreadCount")
    joined_at: datetime = Field(serialization_alias="joinedAt")
    muted_until: Optional[datetime] = Field(None, serialization_alias="mutedUntil")
    user: Optional[UserPublic] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ConversationResponse(BaseModel):
    id: str
    type: ConversationType
    participant_a_id: Optional[str] = Field(None, serialization_alias="participantAId")
    participant_b_id: Optional[str] = Field(None, serialization_alias="participantBId")
    title: Optional[str] = None
    avatar_url: Optional[str] = Field(None, serialization_alias="avatarUrl")
    last_message_id: Optional[str] = Field(None, serialization_alias="lastMessageId")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")
    participants: List[ParticipantResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ConversationSummaryResponse(ConversationResponse):
    """A conversation list entry with its last message and the caller's unread count."""

    last_message: Optional[MessagePreview] = Field(None, serialization_alias="lastMessage")
    unread_count: int = Field(0, serialization_alias="unreadCount")


class ConversationListResponse(BaseModel):
    data: List[ConversationSummaryResponse]
    next_cursor: Optional[str] = Field(None, serialization_alias="nextCursor")
    has_more: bool = Field(False, serialization_alias="hasMore")
