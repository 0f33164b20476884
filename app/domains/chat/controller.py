"""Chat API controller with FastAPI endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_chat_cache, get_current_user, get_db, validate_token
from app.domains.chat.service import ChatService, message_response
from app.schemas.base import ResponseSchema
from app.schemas.chat import ChatCreate, ChatResponse, ChatUpdate, MessageCreate
from app.shared.cache import ChatListCache
from app.shared.pagination import PaginationParams, pagination_params
from app.tasks.media_tasks import purge_media_task
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chats",
    tags=["chats"],
    dependencies=[Depends(validate_token)],
)

search_router = APIRouter(
    prefix="/api/search",
    tags=["search"],
    dependencies=[Depends(validate_token)],
)

library_router = APIRouter(
    prefix="/api/library",
    tags=["library"],
    dependencies=[Depends(validate_token)],
)


def schedule_media_purge(assets: list[dict[str, str]]) -> bool:
    """Queue hosted media for deletion. Best effort: a broker outage is logged."""
    if not assets:
        return False
    try:
        purge_media_task.delay(assets)
    except Exception as e:
        logger.warning(f"Could not queue purge of {len(assets)} media file(s): {str(e)}")
        return False
    return True


@router.post("/", response_model=ResponseSchema, status_code=status.HTTP_201_CREATED)
async def create_chat(
    chat_data: ChatCreate | None = Body(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Create an empty chat, optionally inside a project."""
    service = ChatService(db, cache)
    project_id = chat_data.project_id if chat_data else None
    chat = await service.create_chat(current_user.id, project_id=project_id)

    return ResponseSchema(
        status="success",
        message="Chat created successfully",
        data={"chat_id": chat.id, **ChatResponse.model_validate(chat).model_dump()},
    )


@router.get("/", response_model=ResponseSchema)
async def get_chats(
    pagination: PaginationParams = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """List chats that are not on a project, newest first."""
    service = ChatService(db, cache)
    result = await service.get_chats_list(current_user.id, pagination)

    return ResponseSchema(
        status="success",
        message="Chats retrieved successfully",
        data=result.model_dump(),
    )


@router.get("/{chat_id}", response_model=ResponseSchema)
async def get_chat(
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a chat with all of its messages."""
    service = ChatService(db)
    chat = await service.get_chat_detail(chat_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Chat retrieved successfully",
        data=chat.model_dump(),
    )


@router.get("/{chat_id}/title", response_model=ResponseSchema)
async def get_chat_title(
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Get the current title of a chat, e.g. after a reply renamed it."""
    service = ChatService(db, cache)
    title = await service.get_chat_title(chat_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Chat title retrieved successfully",
        data=title.model_dump(),
    )


@router.get("/{chat_id}/transcript", response_model=ResponseSchema)
async def get_chat_transcript(
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a chat rendered as display blocks."""
    service = ChatService(db)
    transcript = await service.get_transcript(chat_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Transcript retrieved successfully",
        data=transcript.model_dump(exclude_none=True),
    )


@router.post(
    "/{chat_id}/messages", response_model=ResponseSchema, status_code=status.HTTP_201_CREATED
)
async def add_message(
    chat_id: UUID = Path(..., description="Chat ID"),
    message_data: MessageCreate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Append a message to a chat."""
    service = ChatService(db, cache)
    message = await service.add_message(chat_id, current_user.id, message_data)

    return ResponseSchema(
        status="success",
        message="Message saved successfully",
        data=message_response(message).model_dump(),
    )


@router.patch("/{chat_id}", response_model=ResponseSchema)
async def update_chat(
    chat_id: UUID = Path(..., description="Chat ID"),
    chat_data: ChatUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Rename a chat or move it to or from a project."""
    service = ChatService(db, cache)
    chat = await service.update_chat(chat_id, current_user.id, chat_data)

    return ResponseSchema(
        status="success",
        message="Chat updated successfully",
        data=ChatResponse.model_validate(chat).model_dump(),
    )


@router.delete("/{chat_id}", response_model=ResponseSchema)
async def delete_chat(
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Delete a chat and its messages."""
    service = ChatService(db, cache)
    assets = await service.delete_chat(chat_id, current_user.id)
    purge_queued = schedule_media_purge(assets)

    return ResponseSchema(
        status="success",
        message="Chat deleted successfully",
        data={"media_files": len(assets), "purge_queued": purge_queued},
    )


@search_router.get("", response_model=ResponseSchema)
async def search_chats(
    q: str = Query("", max_length=500, description="Text to look for"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Search chat titles and message content."""
    service = ChatService(db)
    results = await service.search_chats(current_user.id, q)

    return ResponseSchema(
        status="success",
        message=f"Found {len(results)} chat(s)",
        data=[result.model_dump() for result in results],
    )


@library_router.get("", response_model=ResponseSchema)
async def get_library(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List every uploaded or generated image across the user's chats."""
    service = ChatService(db)
    images = await service.list_library_images(current_user.id)

    return ResponseSchema(
        status="success",
        message=f"Found {len(images)} image(s)",
        data=[image.model_dump() for image in images],
    )
