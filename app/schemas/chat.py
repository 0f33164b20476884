"""Chat schemas for request/response serialization."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, Field, field_validator

from .base import BaseModelSchema, BaseSchema
from .parts import FilePart, MessagePart, Source, ToolState


class ChatCreate(BaseSchema):
    """Schema for creating a chat, optionally inside a project."""

    project_id: UUID | None = Field(
        None, validation_alias=AliasChoices("project_id", "projectId")
    )


class ChatUpdate(BaseSchema):
    """Schema for moving or renaming a chat.

    An explicit ``projectId: null`` detaches the chat from its project; an
    omitted ``projectId`` leaves it where it is.
    """

    project_id: UUID | None = Field(
        None, validation_alias=AliasChoices("project_id", "projectId")
    )
    title: str | None = Field(None, min_length=1, max_length=255)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError("Chat title cannot be empty or only whitespace")
        return v


class MessageCreate(BaseSchema):
    """Schema for appending a message to a chat."""

    role: Literal["user", "assistant"] = "user"
    message: str | None = Field(None, max_length=100000)
    parts: list[dict[str, Any]] | None = None


class ChatResponse(BaseModelSchema):
    """Schema for chat response."""

    user_id: UUID
    title: str
    project_id: UUID | None = None
    is_on_project: bool = False


class MessageResponse(BaseSchema):
    """Schema for a stored message. Parts keep their camelCase wire shape."""

    id: UUID
    chat_id: UUID
    role: str
    parts: list[dict[str, Any]]
    created_at: datetime


class ChatDetailResponse(ChatResponse):
    """Schema for a chat together with its messages."""

    messages: list[MessageResponse] = Field(default_factory=list)


class ChatListResponse(BaseSchema):
    """Schema for chat list response."""

    chats: list[ChatResponse]
    total: int
    page: int
    size: int
    has_next: bool
    has_prev: bool


class SearchResult(BaseSchema):
    id: UUID
    title: str
    url: str


class ChatTitleResponse(BaseSchema):
    chat_id: UUID
    title: str


class LibraryImage(BaseSchema):
    """An image found in the user's chats, uploaded or generated."""

    id: str
    url: str
    alt: str
    chat_id: UUID
    source: Literal["upload", "generated"]
    created_at: datetime


class RenderedBlock(BaseSchema):
    """One displayable block of a message."""

    kind: Literal["text", "reasoning", "sources", "tool"]
    text: str | None = None
    collapsed: bool | None = None
    is_streaming: bool | None = None
    sources: list[Source] | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    state: ToolState | None = None
    label: str | None = None
    media_type: Literal["image", "audio"] | None = None
    media_url: str | None = None
    error_title: str | None = None
    error_text: str | None = None


class RenderedMessage(BaseSchema):
    """A message as it is displayed: attachments first, then blocks in order."""

    role: str
    attachments: list[FilePart] = Field(default_factory=list)
    blocks: list[RenderedBlock] = Field(default_factory=list)


class TranscriptResponse(BaseSchema):
    chat_id: UUID
    title: str
    messages: list[RenderedMessage]


__all__ = [
    "ChatCreate",
    "ChatUpdate",
    "MessageCreate",
    "ChatResponse",
    "MessageResponse",
    "ChatDetailResponse",
    "ChatListResponse",
    "SearchResult",
    "ChatTitleResponse",
    "LibraryImage",
    "RenderedBlock",
    "RenderedMessage",
    "TranscriptResponse",
    "MessagePart",
]
