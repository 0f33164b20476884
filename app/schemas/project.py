"""Project schemas for request/response serialization."""

from uuid import UUID

from pydantic import Field, field_validator

from .base import BaseModelSchema, BaseSchema


def _clean_title(v: str | None) -> str | None:
    if v is not None:
        v = v.strip()
        if not v:
            raise ValueError("Project title cannot be empty or only whitespace")
    return v


class ProjectCreate(BaseSchema):
    """Schema for creating a new project."""

    title: str = Field(..., min_length=1, max_length=255)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_title(v)


class ProjectUpdate(BaseSchema):
    """Schema for renaming a project."""

    title: str | None = Field(None, min_length=1, max_length=255)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return _clean_title(v)


class ProjectResponse(BaseModelSchema):
    """Schema for project response."""

    user_id: UUID
    title: str
    chat_count: int | None = None


class ProjectListResponse(BaseSchema):
    """Schema for project list response."""

    projects: list[ProjectResponse]
    total: int
    page: int
    size: int
    has_next: bool
    has_prev: bool
