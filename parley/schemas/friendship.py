"""
Pydantic schemas for friend requests and blocks.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from parley.models.friendship import FriendshipStatus
from parley.schemas.conversation import ConversationResponse
from parley.schemas.user import UserPublic


class FriendRequestCreate(BaseModel):
    """Schema for sending a friend request."""

    friend_code: str = Field(..., alias="friendCode", min_length=1, max_length=20)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"friendCode": "alice#0423"}},
    )


class FriendshipResponse(BaseModel):
    id: str
    requester_id: str = Field(serialization_alias="requesterId")
    addressee_id: str = Field(serialization_alias="addresseeId")
    status: FriendshipStatus
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")
    accepted_at: Optional[datetime] = Field(None, serialization_alias="acceptedAt")
    requester: Optional[UserPublic] = None
    addressee: Optional[UserPublic] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FriendResponse(BaseModel):
    """An accepted friend seen from the current user's side."""

    friendship_id: str = Field(serialization_alias="friendshipId")
    since: Optional[datetime] = None
    user: UserPublic


class FriendRequestsResponse(BaseModel):
    incoming: List[FriendshipResponse] = Field(default_factory=list)
    outgoing: List[FriendshipResponse] = Field(default_factory=list)


class FriendshipActionResponse(BaseModel):
    """Result of add/accept: the relationship and, once accepted, its conversation."""

    friendship: FriendshipResponse
    conversation: Optional[ConversationResponse] = None
    conversation_created: bool = Field(False, serialization_alias="conversationCreated")
