"""Chat service layer with business logic."""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import String, and_, cast, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.domains.tools.media import GENERATE_IMAGE, TEXT_TO_SPEECH
from app.exceptions.base import ValidationError
from app.exceptions.chat import ChatNotFoundError, EmptyMessageError, ProjectNotFoundError
from app.schemas.chat import (
    ChatDetailResponse,
    ChatListResponse,
    ChatResponse,
    ChatTitleResponse,
    ChatUpdate,
    LibraryImage,
    MessageCreate,
    MessageResponse,
    SearchResult,
    TranscriptResponse,
)
from app.schemas.generation import ClientMessage, GenerationResult
from app.schemas.parts import (
    FilePart,
    MessagePart,
    TextPart,
    ToolPart,
    ToolState,
    dump_parts,
    parse_parts,
)
from app.shared.cache import ChatListCache
from app.shared.pagination import PaginationParams, paginate
from models import DEFAULT_CHAT_TITLE, Chat, Message, MessageRole, Project
from models.base import utcnow

from .reconciler import extract_title, render_message

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
UNTITLED_CHAT = "Untitled chat"

# Tool outputs that reference hosted media, and the host's resource type.
MEDIA_TOOLS = {GENERATE_IMAGE: "image", TEXT_TO_SPEECH: "video"}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def message_response(message: Message) -> MessageResponse:
    """Build the API view of a stored message, re-reading its parts leniently."""
    return MessageResponse(
        id=message.id,
        chat_id=message.chat_id,
        role=message.role.value,
        parts=dump_parts(parse_parts(message.parts)),
        created_at=message.created_at,
    )


def hosted_media(messages: List[Message]) -> List[Dict[str, str]]:
    """Collect media host references from completed media tool outputs."""
    assets = []
    for message in messages:
        for part in parse_parts(message.parts):
            if not isinstance(part, ToolPart) or part.state is not ToolState.OUTPUT_AVAILABLE:
                continue
            resource_type = MEDIA_TOOLS.get(part.tool_name)
            public_id = part.output.get("publicId") if isinstance(part.output, dict) else None
            if resource_type and public_id:
                assets.append({"public_id": public_id, "resource_type": resource_type})
    return assets


def library_image(message: Message, part: MessagePart) -> Optional[LibraryImage]:
    """The library entry for an image part, if ``part`` is one."""
    if isinstance(part, FilePart):
        if not part.is_image:
            return None
        return LibraryImage(
            id=part.id or f"{part.url}-{message.created_at.isoformat()}",
            url=part.url,
            alt=part.filename or "Image attachment",
            chat_id=message.chat_id,
            source="upload",
            created_at=message.created_at,
        )

    if (
        isinstance(part, ToolPart)
        and part.tool_name == GENERATE_IMAGE
        and part.state is ToolState.OUTPUT_AVAILABLE
        and isinstance(part.output, dict)
        and part.output.get("image")
    ):
        return LibraryImage(
            id=part.tool_call_id,
            url=part.output["image"],
            alt=part.output.get("prompt") or "Generated image",
            chat_id=message.chat_id,
            source="generated",
            created_at=message.created_at,
        )
    return None


class ChatService:
    """Service class for chats and their messages."""

    def __init__(self, db: AsyncSession, cache: Optional[ChatListCache] = None):
        self.db = db
        self.cache = cache

    async def create_chat(self, user_id: UUID, project_id: Optional[UUID] = None) -> Chat:
        """Create an empty chat, optionally inside one of the user's projects."""
        if project_id is not None:
            await self._require_project(project_id, user_id)

        chat = Chat(user_id=user_id, title=DEFAULT_CHAT_TITLE, project_id=project_id)
        try:
            self.db.add(chat)
            await self.db.commit()
            await self.db.refresh(chat)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ValidationError(f"Failed to create chat: {str(e)}")

        logger.info(f"Created chat {chat.id} for user {user_id}")
        self._invalidate(user_id)
        return chat

    async def get_chat(self, chat_id: UUID, user_id: UUID) -> Chat:
        stmt = select(Chat).where(and_(Chat.id == chat_id, Chat.user_id == user_id))
        result = await self.db.execute(stmt)
        chat = result.scalar_one_or_none()
        if chat is None:
            raise ChatNotFoundError()
        return chat

    async def get_chat_with_messages(self, chat_id: UUID, user_id: UUID) -> Chat:
        stmt = (
            select(Chat)
            .options(selectinload(Chat.messages))
            .where(and_(Chat.id == chat_id, Chat.user_id == user_id))
        )
        result = await self.db.execute(stmt)
        chat = result.scalar_one_or_none()
        if chat is None:
            raise ChatNotFoundError()
        return chat

    async def get_chat_detail(self, chat_id: UUID, user_id: UUID) -> ChatDetailResponse:
        chat = await self.get_chat_with_messages(chat_id, user_id)
        return ChatDetailResponse(
            **ChatResponse.model_validate(chat).model_dump(),
            messages=[message_response(message) for message in chat.messages],
        )

    async def get_chats_list(
        self, user_id: UUID, pagination: Optional[PaginationParams] = None
    ) -> ChatListResponse:
        """List the user's chats that are not on a project, newest first."""
        pagination = pagination or PaginationParams()
        key = (pagination.page, pagination.size)
        if self.cache is not None:
            cached = self.cache.get_list(user_id, key)
            if cached is not None:
                return cached

        stmt = (
            select(Chat)
            .where(and_(Chat.user_id == user_id, Chat.project_id.is_(None)))
            .order_by(desc(Chat.created_at))
        )
        result = await paginate(self.db, stmt, pagination)
        response = ChatListResponse(
            chats=[ChatResponse.model_validate(chat) for chat in result["items"]],
            total=result["total"],
            page=result["page"],
            size=result["size"],
            has_next=result["has_next"],
            has_prev=result["has_prev"],
        )

        if self.cache is not None:
            self.cache.set_list(user_id, key, response)
        return response

    async def get_project_chats(self, project_id: UUID, user_id: UUID) -> List[Chat]:
        await self._require_project(project_id, user_id)
        stmt = (
            select(Chat)
            .where(and_(Chat.project_id == project_id, Chat.user_id == user_id))
            .order_by(desc(Chat.created_at))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_transcript(self, chat_id: UUID, user_id: UUID) -> TranscriptResponse:
        """Render a stored chat the way it is displayed."""
        chat = await self.get_chat_with_messages(chat_id, user_id)
        return TranscriptResponse(
            chat_id=chat.id,
            title=chat.title,
            messages=[
                render_message(message.role.value, parse_parts(message.parts))
                for message in chat.messages
            ],
        )

    async def add_message(self, chat_id: UUID, user_id: UUID, data: MessageCreate) -> Message:
        """Append a message. Parts are validated strictly before storage."""
        chat = await self.get_chat(chat_id, user_id)

        if data.parts:
            parts = parse_parts(data.parts, strict=True)
        else:
            text = (data.message or "").strip()
            parts = [TextPart(text=text)] if text else []
        if not parts:
            raise EmptyMessageError()

        return await self._append(chat, MessageRole(data.role), parts)

    async def record_user_message(
        self, chat_id: UUID, user_id: UUID, message: ClientMessage
    ) -> Optional[Message]:
        """Persist the user turn that starts a generation."""
        chat = await self.get_chat(chat_id, user_id)
        if not message.parts:
            logger.debug(f"Nothing to store for user turn in chat {chat_id}")
            return None
        return await self._append(chat, MessageRole.USER, message.parts)

    async def save_generation(
        self, chat_id: UUID, user_id: UUID, result: GenerationResult
    ) -> Optional[Message]:
        """Store the assistant message of a finished generation.

        A ``<title>`` marker in the reply replaces the chat title, so the
        title always follows the most recent reply that carried one.
        """
        chat = await self.get_chat(chat_id, user_id)
        title = extract_title(result.text)
        if title:
            chat.title = title

        message = None
        if result.parts:
            message = await self._append(chat, MessageRole.ASSISTANT, result.parts)
        elif title:
            await self._commit(chat, "update chat title")

        if title:
            logger.info(f"Chat {chat_id} titled '{title}'")
            if self.cache is not None:
                self.cache.set_title(chat.id, user_id, title)
            self._invalidate(user_id)
        return message

    async def update_chat(self, chat_id: UUID, user_id: UUID, data: ChatUpdate) -> Chat:
        """Rename a chat or move it between projects.

        ``projectId`` present and null detaches the chat; absent leaves it.
        """
        chat = await self.get_chat(chat_id, user_id)

        if "project_id" in data.model_fields_set:
            if data.project_id is not None:
                await self._require_project(data.project_id, user_id)
            chat.project_id = data.project_id
        if data.title is not None:
            chat.title = data.title

        await self._commit(chat, "update chat")
        await self.db.refresh(chat)

        if data.title is not None and self.cache is not None:
            self.cache.set_title(chat.id, user_id, chat.title)
        self._invalidate(user_id)
        return chat

    async def delete_chat(self, chat_id: UUID, user_id: UUID) -> List[Dict[str, str]]:
        """Delete a chat with its messages.

        Returns the hosted media its tool outputs referenced, for the caller
        to purge.
        """
        chat = await self.get_chat_with_messages(chat_id, user_id)
        assets = hosted_media(chat.messages)

        try:
            await self.db.delete(chat)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ValidationError(f"Failed to delete chat: {str(e)}")

        logger.info(f"Deleted chat {chat_id} ({len(assets)} hosted media file(s))")
        if self.cache is not None:
            self.cache.drop_title(chat_id)
        self._invalidate(user_id)
        return assets

    async def search_chats(self, user_id: UUID, query: str) -> List[SearchResult]:
        """Find chats whose title or stored message parts contain ``query``."""
        query = (query or "").strip()
        if not query:
            return []

        pattern = f"%{_escape_like(query)}%"
        last_message = (
            select(Message.chat_id, func.max(Message.created_at).label("last_at"))
            .group_by(Message.chat_id)
            .subquery()
        )
        matching_messages = select(Message.chat_id).where(
            cast(Message.parts, String).ilike(pattern, escape="\\")
        )
        stmt = (
            select(Chat)
            .outerjoin(last_message, last_message.c.chat_id == Chat.id)
            .where(
                and_(
                    Chat.user_id == user_id,
                    or_(
                        Chat.title.ilike(pattern, escape="\\"),
                        Chat.id.in_(matching_messages),
                    ),
                )
            )
            .order_by(desc(func.coalesce(last_message.c.last_at, Chat.created_at)))
            .limit(SEARCH_LIMIT)
        )
        result = await self.db.execute(stmt)
        return [
            SearchResult(id=chat.id, title=chat.title or UNTITLED_CHAT, url=f"/~/{chat.id}")
            for chat in result.scalars().all()
        ]

    async def get_chat_title(self, chat_id: UUID, user_id: UUID) -> ChatTitleResponse:
        """Current title of a chat, served from the cache when it is warm."""
        if self.cache is not None:
            title = self.cache.get_title(chat_id, user_id)
            if title is not None:
                return ChatTitleResponse(chat_id=chat_id, title=title)

        chat = await self.get_chat(chat_id, user_id)
        if self.cache is not None:
            self.cache.set_title(chat.id, user_id, chat.title)
        return ChatTitleResponse(chat_id=chat.id, title=chat.title)

    async def list_library_images(self, user_id: UUID) -> List[LibraryImage]:
        """Every image across the user's chats, newest message first.

        Covers uploaded image attachments and completed ``generateImage``
        outputs. The same URL stored at the same moment is listed once.
        """
        stmt = (
            select(Message)
            .join(Chat, Message.chat_id == Chat.id)
            .where(Chat.user_id == user_id)
            .order_by(desc(Message.created_at))
        )
        result = await self.db.execute(stmt)

        images = []
        seen = set()
        for message in result.scalars().all():
            for part in parse_parts(message.parts):
                image = library_image(message, part)
                if image is None:
                    continue
                key = (image.url, image.created_at)
                if key in seen:
                    continue
                seen.add(key)
                images.append(image)

        logger.debug(f"Library for user {user_id}: {len(images)} image(s)")
        return images

    # Private helper methods
    async def _append(self, chat: Chat, role: MessageRole, parts: List[MessagePart]) -> Message:
        message = Message(chat_id=chat.id, role=role, parts=dump_parts(parts))
        self.db.add(message)
        chat.updated_at = utcnow()
        await self._commit(message, "store message")
        await self.db.refresh(message)
        return message

    async def _commit(self, instance: Any, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action} for {instance!r}: {str(e)}")
            raise ValidationError(f"Failed to {action}: {str(e)}")

    async def _require_project(self, project_id: UUID, user_id: UUID) -> Project:
        stmt = select(Project).where(and_(Project.id == project_id, Project.user_id == user_id))
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()
        if project is None:
            raise ProjectNotFoundError()
        return project

    def _invalidate(self, user_id: UUID) -> None:
        if self.cache is not None:
            self.cache.invalidate_user(user_id)
