"""
Models package initialization.
"""

from .base import Base, BaseModel
from .chat import DEFAULT_CHAT_TITLE, Chat
from .message import Message, MessageRole
from .project import Project
from .user import User

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "Project",
    "Chat",
    "Message",
    "MessageRole",
    "DEFAULT_CHAT_TITLE",
]
