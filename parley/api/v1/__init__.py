"""
API v1 router exports.
Provides API endpoint routers.
"""
from parley.api.v1 import auth, conversations, friends, keys, messages, users

__all__ = [
    "auth",
    "conversations",
    "friends",
    "keys",
    "messages",
    "users",
]
