"""
Service layer exports.
Provides business logic for the application.
"""
from parley.services.block_service import BlockService
from parley.services.conversation_service import ConversationService
from parley.services.encryption_service import EncryptionService
from parley.services.friend_service import FriendService
from parley.services.message_service import MessageService
from parley.services.presence_service import PresenceService
from parley.services.token_service import TokenService
from parley.services.user_service import UserService

__all__ = [
    "BlockService",
    "ConversationService",
    "EncryptionService",
    "FriendService",
    "MessageService",
    "PresenceService",
    "TokenService",
    "UserService",
]
