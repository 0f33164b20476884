"""Project service layer with business logic."""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import and_, desc, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions.base import ValidationError
from app.exceptions.chat import ProjectNotFoundError
from app.schemas.project import ProjectCreate, ProjectResponse, ProjectUpdate
from app.shared.cache import ChatListCache
from app.shared.pagination import PaginationParams, paginate
from models import Chat, Project

logger = logging.getLogger(__name__)


class ProjectService:
    """Service class for project business logic."""

    def __init__(self, db: AsyncSession, cache: Optional[ChatListCache] = None):
        self.db = db
        self.cache = cache

    async def create_project(self, project_data: ProjectCreate, user_id: UUID) -> Project:
        """Create a new project."""
        project = Project(user_id=user_id, title=project_data.title)

        try:
            self.db.add(project)
            await self.db.commit()
            await self.db.refresh(project)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ValidationError(f"Failed to create project: {str(e)}")

        logger.info(f"Created project {project.id} for user {user_id}")
        return project

    async def get_project(self, project_id: UUID, user_id: UUID) -> Project:
        """Get a project by ID, ensuring it belongs to the user."""
        stmt = select(Project).where(and_(Project.id == project_id, Project.user_id == user_id))
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()
        if project is None:
            raise ProjectNotFoundError()
        return project

    async def get_project_response(self, project_id: UUID, user_id: UUID) -> ProjectResponse:
        project = await self.get_project(project_id, user_id)
        counts = await self._chat_counts([project.id])
        return self._to_response(project, counts)

    async def get_projects_list(
        self, user_id: UUID, pagination: Optional[PaginationParams] = None
    ) -> Dict[str, Any]:
        """Get paginated list of projects, most recently updated first."""
        stmt = select(Project).where(Project.user_id == user_id).order_by(desc(Project.updated_at))
        result = await paginate(self.db, stmt, pagination or PaginationParams())

        counts = await self._chat_counts([project.id for project in result["items"]])
        result["items"] = [self._to_response(project, counts) for project in result["items"]]
        return result

    async def update_project(
        self, project_id: UUID, project_data: ProjectUpdate, user_id: UUID
    ) -> Project:
        """Rename a project."""
        project = await self.get_project(project_id, user_id)

        update_data = project_data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in update_data.items():
            setattr(project, field, value)

        try:
            await self.db.commit()
            await self.db.refresh(project)
            return project
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ValidationError(f"Failed to update project: {str(e)}")

    async def delete_project(self, project_id: UUID, user_id: UUID) -> int:
        """Delete a project. Its chats are kept and moved off the project.

        Returns the number of chats that were detached.
        """
        project = await self.get_project(project_id, user_id)

        try:
            detached = await self.db.execute(
                update(Chat)
                .where(Chat.project_id == project_id)
                .values(project_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.delete(project)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ValidationError(f"Failed to delete project: {str(e)}")

        logger.info(f"Deleted project {project_id}, detached {detached.rowcount} chat(s)")
        if detached.rowcount and self.cache is not None:
            self.cache.invalidate_user(user_id)
        return detached.rowcount

    # Private helper methods
    async def _chat_counts(self, project_ids: list[UUID]) -> Dict[UUID, int]:
        if not project_ids:
            return {}
        stmt = (
            select(Chat.project_id, func.count(Chat.id))
            .where(Chat.project_id.in_(project_ids))
            .group_by(Chat.project_id)
        )
        result = await self.db.execute(stmt)
        return {project_id: count for project_id, count in result.all()}

    @staticmethod
    def _to_response(project: Project, counts: Dict[UUID, int]) -> ProjectResponse:
        response = ProjectResponse.model_validate(project)
        response.chat_count = counts.get(project.id, 0)
        return response
