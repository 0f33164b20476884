"""User-related Pydantic schemas."""

from typing import Optional

from .base import BaseModelSchema


class UserResponse(BaseModelSchema):
    """Schema for user response data."""

    clerk_user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
