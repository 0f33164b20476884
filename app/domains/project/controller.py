"""Project API controller with FastAPI endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_chat_cache, get_current_user, get_db, validate_token
from app.domains.chat.service import ChatService
from app.domains.project.service import ProjectService
from app.schemas.base import ResponseSchema
from app.schemas.chat import ChatResponse
from app.schemas.project import (
    ProjectCreate,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdate,
)
from app.shared.cache import ChatListCache
from app.shared.pagination import PaginationParams, pagination_params
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
    dependencies=[Depends(validate_token)],  # Global token validation for all routes
)


@router.post("/", response_model=ResponseSchema, status_code=201)
async def create_project(
    project_data: ProjectCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a new project."""
    service = ProjectService(db)
    project = await service.create_project(project_data=project_data, user_id=current_user.id)

    response = ProjectResponse.model_validate(project)
    response.chat_count = 0
    return ResponseSchema(
        status="success",
        message="Project created successfully",
        data=response.model_dump(),
    )


@router.get("/", response_model=ProjectListResponse)
async def get_projects(
    pagination: PaginationParams = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get paginated list of projects."""
    service = ProjectService(db)
    result = await service.get_projects_list(user_id=current_user.id, pagination=pagination)

    return ProjectListResponse(
        projects=result["items"],
        total=result["total"],
        page=result["page"],
        size=result["size"],
        has_next=result["has_next"],
        has_prev=result["has_prev"],
    )


@router.get("/{project_id}", response_model=ResponseSchema)
async def get_project(
    project_id: UUID = Path(..., description="Project ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a specific project by ID."""
    service = ProjectService(db)
    project = await service.get_project_response(project_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Project retrieved successfully",
        data=project.model_dump(),
    )


@router.patch("/{project_id}", response_model=ResponseSchema)
async def update_project(
    project_id: UUID = Path(..., description="Project ID"),
    project_data: ProjectUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rename a project."""
    service = ProjectService(db)
    await service.update_project(project_id, project_data, current_user.id)
    project = await service.get_project_response(project_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Project updated successfully",
        data=project.model_dump(),
    )


@router.delete("/{project_id}", response_model=ResponseSchema)
async def delete_project(
    project_id: UUID = Path(..., description="Project ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ChatListCache = Depends(get_chat_cache),
):
    """Delete a project. Its chats move back to the chat list."""
    service = ProjectService(db, cache)
    detached = await service.delete_project(project_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Project deleted successfully",
        data={"detached_chats": detached},
    )


@router.get("/{project_id}/chats", response_model=ResponseSchema)
async def get_project_chats(
    project_id: UUID = Path(..., description="Project ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get all chats filed under a project."""
    chats = await ChatService(db).get_project_chats(project_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Project chats retrieved successfully",
        data=[ChatResponse.model_validate(chat).model_dump() for chat in chats],
    )
