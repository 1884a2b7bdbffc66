"""
SQLAlchemy models for the Parley chat backend.

All models must be imported here so Base.metadata knows every table.
"""

# Import Base first
from parley.models.base import Base, TimestampMixin, UUIDMixin

# Import all models (order matters for relationships)
from parley.models.user import User, UserStatus
from parley.models.friendship import Friendship, FriendshipStatus
from parley.models.conversation import Conversation, Participant, ConversationType, ParticipantRole
from parley.models.message import Message, MessageReceipt, MessageContentType
from parley.models.encryption import IdentityKey, SignedPreKey, OneTimePreKey
from parley.models.refresh_token import RefreshToken

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Users
    "User",
    "UserStatus",
    "Friendship",
    "FriendshipStatus",
    # Conversations
    "Conversation",
    "Participant",
    "ConversationType",
    "ParticipantRole",
    # Messages
    "Message",
    "MessageReceipt",
    "MessageContentType",
    # Keys
    "IdentityKey",
    "SignedPreKey",
    "OneTimePreKey",
    # Auth
    "RefreshToken",
]
