"""
Provides the User model for the application's database schema.

Users are provisioned from Clerk session tokens on their first
authenticated request. A user owns chats and projects.
"""

from sqlalchemy import Boolean, Column, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class User(BaseModel):
    """
    Represents a user entity in the application.

    :ivar clerk_user_id: Unique identifier for the user provided by Clerk.
    :type clerk_user_id: str
    :ivar email: Email address of the user, when Clerk shares it.
    :type email: str
    :ivar username: Display name of the user.
    :type username: str
    :ivar image_url: Avatar URL from the Clerk profile.
    :type image_url: str
    :ivar is_active: Indicates whether the user account is active.
    :type is_active: bool
    """

    __tablename__ = "users"

    clerk_user_id = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    username = Column(String(100))
    image_url = Column(String(1024))
    is_active = Column(Boolean, default=True)

    # Relationships
    projects = relationship("Project", back_populates="user", cascade="all, delete-orphan")
    chats = relationship("Chat", back_populates="user", cascade="all, delete-orphan")
