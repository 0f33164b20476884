"""
Chat model for AI assistant conversations.
"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel

DEFAULT_CHAT_TITLE = "New chat"


class Chat(BaseModel):
    """
    Represents a chat entity in the application.

    The title starts as ``"New chat"`` and is replaced by the title the
    assistant derives in its replies.
    """

    __tablename__ = "chats"

    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default=DEFAULT_CHAT_TITLE)
    project_id = Column(
        UUID(), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    user = relationship("User", back_populates="chats")
    project = relationship("Project", back_populates="chats")
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    @property
    def is_on_project(self) -> bool:
        return self.project_id is not None
