"""
Pydantic schema exports.
Provides request/response models for API endpoints.
"""
from parley.schemas.user import (
    UserRegister,
    UserLogin,
    RefreshRequest,
    AvatarUploadRequest,
    AvatarCompleteRequest,
    UserPublic,
    UserResponse,
    TokenResponse,
    AvatarUploadResponse,
)
from parley.schemas.message import (
    MessageCreate,
    MessageUpdate,
    MarkReadRequest,
    MessagePreview,
    MessageResponse,
    MessageSendResponse,
    MessageListResponse,
    MarkReadResponse,
    MessageDeleteResponse,
)
from parley.schemas.conversation import (
    ConversationCreate,
    GroupCreate,
    ParticipantAdd,
    ParticipantResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    ConversationListResponse,
)
from parley.schemas.friendship import (
    FriendRequestCreate,
    FriendshipResponse,
    FriendResponse,
    FriendRequestsResponse,
    FriendshipActionResponse,
)
from parley.schemas.encryption import (
    KeyUploadRequest,
    KeyUploadResponse,
    KeyCountResponse,
    PreKeyBundleResponse,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "RefreshRequest",
    "AvatarUploadRequest",
    "AvatarCompleteRequest",
    "UserPublic",
    "UserResponse",
    "TokenResponse",
    "AvatarUploadResponse",
    "MessageCreate",
    "MessageUpdate",
    "MarkReadRequest",
    "MessagePreview",
    "MessageResponse",
    "MessageSendResponse",
    "MessageListResponse",
    "MarkReadResponse",
    "MessageDeleteResponse",
    "ConversationCreate",
    "GroupCreate",
    "ParticipantAdd",
    "ParticipantResponse",
    "ConversationResponse",
    "ConversationSummaryResponse",
    "ConversationListResponse",
    "FriendRequestCreate",
    "FriendshipResponse",
    "FriendResponse",
    "FriendRequestsResponse",
    "FriendshipActionResponse",
    "KeyUploadRequest",
    "KeyUploadResponse",
    "KeyCountResponse",
    "PreKeyBundleResponse",
]
