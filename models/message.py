"""
Message model for chat turns.

Messages are append-only; their content is an ordered list of parts
stored as JSON.
"""

import enum

from sqlalchemy import JSON, Column, Enum, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel


class MessageRole(str, enum.Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """
    Represents a single chat message.
    """

    __tablename__ = "messages"

    chat_id = Column(UUID(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(MessageRole, values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
    )
    parts = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)

    # Relationships
    chat = relationship("Chat", back_populates="messages")
