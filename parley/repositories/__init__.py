"""
Repository layer exports.
Provides database access layer for the application.
"""
from parley.repositories.base import BaseRepository
from parley.repositories.conversation_repo import ConversationRepository, ParticipantRepository
from parley.repositories.friendship_repo import FriendshipRepository
from parley.repositories.message_repo import MessageRepository, MessageReceiptRepository
from parley.repositories.user_repo import UserRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "ParticipantRepository",
    "FriendshipRepository",
    "MessageRepository",
    "MessageReceiptRepository",
    "UserRepository",
]
