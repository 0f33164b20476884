"""
API tests for Project controller.

This module contains API endpoint tests for the project controller,
testing CRUD operations and the project-chat relationship.
"""

import uuid

import pytest
from fastapi import status
from httpx import AsyncClient

from tests.factories import ChatFactory, ProjectFactory, persist


class TestProjectController:
    """Test cases for Project API endpoints."""

    @pytest.mark.asyncio
    async def test_create_project_success(self, authenticated_client: AsyncClient):
        """Test successful project creation."""
        response = await authenticated_client.post("/api/projects/", json={"title": "  Thesis  "})

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "success"
        assert data["message"] == "Project created successfully"
        assert data["data"]["title"] == "Thesis"
        assert data["data"]["chat_count"] == 0

    @pytest.mark.asyncio
    async def test_create_project_missing_title(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post("/api/projects/", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_create_project_whitespace_title(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post("/api/projects/", json={"title": "   "})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_create_project_unauthorized(self, client: AsyncClient):
        """Test creating project without authentication."""
        response = await client.post("/api/projects/", json={"title": "Nope"})

        assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)

    @pytest.mark.asyncio
    async def test_get_projects_list(self, authenticated_client: AsyncClient, test_db, test_user, test_user_2):
        """Projects come with their chat counts; other users' projects are hidden."""
        busy, _ = await persist(
            test_db,
            ProjectFactory.build(user_id=test_user.id, title="Busy"),
            ProjectFactory.build(user_id=test_user.id, title="Idle"),
        )
        await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, project_id=busy.id),
            ChatFactory.build(user_id=test_user.id, project_id=busy.id),
            ProjectFactory.build(user_id=test_user_2.id, title="Foreign"),
        )

        response = await authenticated_client.get("/api/projects/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert {project["title"]: project["chat_count"] for project in data["projects"]} == {
            "Busy": 2,
            "Idle": 0,
        }

    @pytest.mark.asyncio
    async def test_get_projects_pagination(self, authenticated_client: AsyncClient, test_db, test_user):
        await persist(test_db, *[ProjectFactory.build(user_id=test_user.id) for _ in range(5)])

        response = await authenticated_client.get("/api/projects/?page=3&size=2")

        data = response.json()
        assert len(data["projects"]) == 1
        assert data["has_next"] is False
        assert data["has_prev"] is True

    @pytest.mark.asyncio
    async def test_get_projects_invalid_pagination(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/api/projects/?page=0")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_get_project(self, authenticated_client: AsyncClient, test_project):
        response = await authenticated_client.get(f"/api/projects/{test_project.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"] == str(test_project.id)
        assert response.json()["data"]["chat_count"] == 0

    @pytest.mark.asyncio
    async def test_get_project_not_found(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get(f"/api/projects/{uuid.uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "PROJECT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_get_project_other_user(self, authenticated_client: AsyncClient, test_db, test_user_2):
        foreign = await persist(test_db, ProjectFactory.build(user_id=test_user_2.id))

        response = await authenticated_client.get(f"/api/projects/{foreign.id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_rename_project(self, authenticated_client: AsyncClient, test_project):
        response = await authenticated_client.patch(
            f"/api/projects/{test_project.id}", json={"title": "Dissertation"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["title"] == "Dissertation"

    @pytest.mark.asyncio
    async def test_delete_project_detaches_chats(
        self, authenticated_client: AsyncClient, test_db, test_user, test_project
    ):
        """Deleting a project keeps its chats and returns them to the chat list."""
        await persist(test_db, ChatFactory.build(user_id=test_user.id, title="Filed", project_id=test_project.id))

        response = await authenticated_client.delete(f"/api/projects/{test_project.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"] == {"detached_chats": 1}

        chats = await authenticated_client.get("/api/chats/")
        assert [chat["title"] for chat in chats.json()["data"]["chats"]] == ["Filed"]

        missing = await authenticated_client.get(f"/api/projects/{test_project.id}")
        assert missing.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_project_chats(self, authenticated_client: AsyncClient, test_db, test_user, test_project):
        await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, title="Inside", project_id=test_project.id),
            ChatFactory.build(user_id=test_user.id, title="Outside"),
        )

        response = await authenticated_client.get(f"/api/projects/{test_project.id}/chats")

        assert response.status_code == status.HTTP_200_OK
        assert [chat["title"] for chat in response.json()["data"]] == ["Inside"]

    @pytest.mark.asyncio
    async def test_project_chats_unknown_project(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get(f"/api/projects/{uuid.uuid4()}/chats")

        assert response.status_code == status.HTTP_404_NOT_FOUND
