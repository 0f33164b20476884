"""
Project model for grouping chats.
"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel


class Project(BaseModel):
    """
    Represents a project entity in the application.
    """

    __tablename__ = "projects"

    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    # Relationships
    user = relationship("User", back_populates="projects")
    # Deleting a project leaves its chats in place, detached.
    chats = relationship("Chat", back_populates="project", passive_deletes=True)
