# app/core/dependencies.py
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import ClerkAuthenticator
from app.database import get_db, get_session_factory
from app.domains.user.service import UserService
from app.shared.cache import ChatListCache
from models import User

logger = logging.getLogger(__name__)

security = HTTPBearer()
auth = ClerkAuthenticator()

__all__ = [
    "get_db",
    "get_session_factory",
    "get_chat_cache",
    "validate_token",
    "get_current_user",
]


def get_chat_cache(request: Request) -> ChatListCache:
    """Return the application's chat-list cache."""
    cache = getattr(request.app.state, "chat_cache", None)
    if cache is None:
        cache = ChatListCache(ttl=settings.chat_cache_ttl)
        request.app.state.chat_cache = cache
    return cache


async def validate_token(token: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Validate and decode JWT token from Clerk.

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        if not token or not token.credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication token is required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        payload = await auth.verify_token(token.credentials)

        if not payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return payload

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Token validation error: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    request: Request,
    payload: dict = Depends(validate_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from JWT payload.

    The user row is provisioned on first sight of a Clerk user id.

    Returns:
        User: Current authenticated user

    Raises:
        HTTPException: If the token has no subject or the user is inactive
    """
    try:
        clerk_user_id = payload.get("sub")

        if not clerk_user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload - missing user ID",
            )

        user_service = UserService(db)
        user = await user_service.get_or_create_user(clerk_user_id, payload)

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive"
            )

        # Add user info to request state for logging
        request.state.user_id = user.id
        request.state.clerk_user_id = clerk_user_id

        return user

    except HTTPException:
        raise
    except Exception as e:
        logger.error("User authentication error: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service error",
        ) from e
