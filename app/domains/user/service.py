# app/domains/user/service.py
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import User

logger = logging.getLogger(__name__)


def profile_from_claims(claims: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Pick the profile fields a Clerk session token may carry."""
    email = claims.get("email") or claims.get("email_address")
    username = claims.get("username") or claims.get("name")
    if not username and email:
        username = email.split("@", 1)[0]
    return {
        "email": email,
        "username": username,
        "image_url": claims.get("image_url") or claims.get("picture"),
    }


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[User]:
        """Get a user by Clerk user ID."""
        result = await self.db.execute(select(User).where(User.clerk_user_id == clerk_user_id))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        clerk_user_id: str,
        email: Optional[str] = None,
        username: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> User:
        """Create a new user."""
        user = User(
            clerk_user_id=clerk_user_id, email=email, username=username, image_url=image_url
        )

        try:
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise e

        logger.info(f"👤 Provisioned user {user.id} for Clerk user {clerk_user_id}")
        return user

    async def get_or_create_user(self, clerk_user_id: str, clerk_payload: dict) -> User:
        """Get existing user or create new one from Clerk payload.

        Profile fields present in the token refresh the stored ones.
        """
        profile = profile_from_claims(clerk_payload)
        user = await self.get_user_by_clerk_id(clerk_user_id)
        if not user:
            return await self.create_user(clerk_user_id=clerk_user_id, **profile)

        changed = {
            field: value
            for field, value in profile.items()
            if value and getattr(user, field) != value
        }
        if changed:
            for field, value in changed.items():
                setattr(user, field, value)
            try:
                await self.db.commit()
                await self.db.refresh(user)
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise e
        return user
