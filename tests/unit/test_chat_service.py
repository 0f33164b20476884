"""Unit tests for Chat Service."""

import uuid
from datetime import datetime

import pytest
from sqlalchemy import func, select

from app.domains.chat.service import ChatService, hosted_media, message_response
from app.exceptions.chat import (
    ChatNotFoundError,
    EmptyMessageError,
    InvalidPartError,
    ProjectNotFoundError,
)
from app.schemas.chat import ChatUpdate, MessageCreate
from app.schemas.generation import ClientMessage, FinishReason, GenerationResult
from app.schemas.parts import TextPart
from app.shared.cache import ChatListCache
from app.shared.pagination import PaginationParams
from models import Chat, Message, MessageRole
from tests.factories import ChatFactory, MessageFactory, ProjectFactory, persist


def generation(text: str, parts=None) -> GenerationResult:
    return GenerationResult(
        text=text,
        parts=[TextPart(text=text)] if parts is None else parts,
        finish_reason=FinishReason.STOP,
        steps=1,
    )


def media_message(chat_id) -> Message:
    return Message(
        chat_id=chat_id,
        role=MessageRole.ASSISTANT,
        parts=[
            {
                "type": "tool-generateImage",
                "toolCallId": "c1",
                "state": "output-available",
                "output": {"success": True, "image": "https://cdn.example/i.png", "publicId": "vision/img1"},
            },
            {
                "type": "tool-textToSpeech",
                "toolCallId": "c2",
                "state": "output-available",
                "output": {"success": True, "audioUrl": "https://cdn.example/a.mp3", "publicId": "vision/aud1"},
            },
            {
                "type": "tool-generateImage",
                "toolCallId": "c3",
                "state": "output-available",
                "output": {"success": False, "error": "quota", "publicId": "never-uploaded"},
            },
            {"type": "text", "text": "Here they are."},
        ],
    )


@pytest.mark.asyncio
class TestChatService:
    """Test cases for ChatService."""

    @pytest.fixture
    def cache(self):
        return ChatListCache(ttl=300)

    @pytest.fixture
    def chat_service(self, test_db, cache):
        return ChatService(test_db, cache)

    async def test_create_chat(self, chat_service, test_user):
        """New chats start untitled and outside any project."""
        chat = await chat_service.create_chat(test_user.id)

        assert chat.title == "New chat"
        assert chat.project_id is None
        assert chat.is_on_project is False

    async def test_create_chat_in_project(self, chat_service, test_user, test_project):
        chat = await chat_service.create_chat(test_user.id, project_id=test_project.id)

        assert chat.project_id == test_project.id
        assert chat.is_on_project is True

    async def test_create_chat_in_foreign_project(self, chat_service, test_db, test_user, test_user_2):
        foreign = await persist(test_db, ProjectFactory.build(user_id=test_user_2.id))

        with pytest.raises(ProjectNotFoundError):
            await chat_service.create_chat(test_user.id, project_id=foreign.id)

    async def test_get_chat_of_other_user(self, chat_service, test_chat, test_user_2):
        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat(test_chat.id, test_user_2.id)

    async def test_get_missing_chat(self, chat_service, test_user):
        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat(uuid.uuid4(), test_user.id)

    async def test_chat_detail_reads_parts_leniently(self, chat_service, test_db, test_chat, test_user):
        test_db.add(
            Message(
                chat_id=test_chat.id,
                role=MessageRole.USER,
                parts=[{"type": "step-start"}, {"type": "text", "text": "hi"}, {"type": "mystery"}],
            )
        )
        await test_db.commit()

        detail = await chat_service.get_chat_detail(test_chat.id, test_user.id)

        assert detail.title == "New chat"
        assert detail.messages[0].parts == [{"type": "text", "text": "hi"}]
        assert detail.messages[0].role == "user"

    async def test_chat_list_excludes_project_chats(self, chat_service, test_db, test_user, test_project):
        await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, title="Loose"),
            ChatFactory.build(user_id=test_user.id, title="Filed", project_id=test_project.id),
        )

        listing = await chat_service.get_chats_list(test_user.id)

        assert [chat.title for chat in listing.chats] == ["Loose"]
        assert listing.total == 1
        assert listing.has_next is False

    async def test_chat_list_pagination(self, chat_service, test_db, test_user):
        await persist(test_db, *ChatFactory.build_batch(3, user_id=test_user.id))

        page = await chat_service.get_chats_list(test_user.id, PaginationParams(page=1, size=2))

        assert len(page.chats) == 2
        assert page.total == 3
        assert page.has_next is True
        assert page.has_prev is False

    async def test_chat_list_is_cached_until_invalidated(self, chat_service, test_db, test_user, cache):
        """A write through the service drops the cached pages."""
        first = await chat_service.get_chats_list(test_user.id)
        assert first.total == 0

        # Written behind the service's back, so the cached page is still served.
        await persist(test_db, ChatFactory.build(user_id=test_user.id))
        assert (await chat_service.get_chats_list(test_user.id)) is first

        await chat_service.create_chat(test_user.id)
        refreshed = await chat_service.get_chats_list(test_user.id)
        assert refreshed.total == 2

    async def test_get_project_chats(self, chat_service, test_db, test_user, test_project):
        await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, project_id=test_project.id),
            ChatFactory.build(user_id=test_user.id),
        )

        chats = await chat_service.get_project_chats(test_project.id, test_user.id)

        assert len(chats) == 1
        assert chats[0].project_id == test_project.id

    async def test_add_text_message(self, chat_service, test_chat, test_user):
        message = await chat_service.add_message(
            test_chat.id, test_user.id, MessageCreate(message="  Plan a trip to Kyoto  ")
        )

        assert message.role is MessageRole.USER
        assert message.parts == [{"type": "text", "text": "Plan a trip to Kyoto"}]

    async def test_add_message_with_parts(self, chat_service, test_chat, test_user):
        data = MessageCreate(
            parts=[
                {"type": "text", "text": "What is this?"},
                {"type": "attachment", "url": "https://cdn.example/x.png", "contentType": "image/png", "name": "x.png"},
            ]
        )

        message = await chat_service.add_message(test_chat.id, test_user.id, data)

        assert message.parts[1] == {
            "type": "attachment",
            "url": "https://cdn.example/x.png",
            "mediaType": "image/png",
            "filename": "x.png",
        }

    async def test_add_message_rejects_invalid_parts(self, chat_service, test_chat, test_user):
        with pytest.raises(InvalidPartError):
            await chat_service.add_message(
                test_chat.id, test_user.id, MessageCreate(parts=[{"type": "tool-webSearch", "state": "bogus"}])
            )

    async def test_add_empty_message(self, chat_service, test_chat, test_user):
        with pytest.raises(EmptyMessageError):
            await chat_service.add_message(test_chat.id, test_user.id, MessageCreate(message="   "))

    async def test_record_user_message(self, chat_service, test_chat, test_user):
        message = await chat_service.record_user_message(
            test_chat.id, test_user.id, ClientMessage.model_validate({"role": "user", "content": "hello"})
        )

        assert message.parts == [{"type": "text", "text": "hello"}]
        assert await chat_service.record_user_message(
            test_chat.id, test_user.id, ClientMessage(role="user", parts=[])
        ) is None

    async def test_save_generation_derives_title(self, chat_service, test_chat, test_user, cache):
        message = await chat_service.save_generation(
            test_chat.id, test_user.id, generation("<title>Kyoto Itinerary</title>Day one: temples.")
        )

        assert message.role is MessageRole.ASSISTANT
        assert message.parts[0]["text"].startswith("<title>Kyoto Itinerary</title>")
        assert test_chat.title == "Kyoto Itinerary"
        assert cache.get_title(test_chat.id, test_user.id) == "Kyoto Itinerary"

    async def test_latest_title_wins(self, chat_service, test_chat, test_user):
        await chat_service.save_generation(test_chat.id, test_user.id, generation("<title>First</title>a"))
        await chat_service.save_generation(test_chat.id, test_user.id, generation("no marker"))
        assert test_chat.title == "First"

        await chat_service.save_generation(test_chat.id, test_user.id, generation("<title>Second</title>b"))
        assert test_chat.title == "Second"

    async def test_save_generation_without_parts_keeps_title(self, chat_service, test_db, test_chat, test_user):
        result = await chat_service.save_generation(test_chat.id, test_user.id, generation("", parts=[]))

        assert result is None
        count = await test_db.scalar(select(func.count(Message.id)).where(Message.chat_id == test_chat.id))
        assert count == 0
        assert test_chat.title == "New chat"

    async def test_rename_chat(self, chat_service, test_chat, test_user, cache):
        chat = await chat_service.update_chat(test_chat.id, test_user.id, ChatUpdate(title="  Renamed  "))

        assert chat.title == "Renamed"
        assert cache.get_title(chat.id, test_user.id) == "Renamed"

    async def test_chat_title_prefers_cache(self, chat_service, test_chat, test_user, cache):
        cache.set_title(test_chat.id, test_user.id, "Derived Moments Ago")

        title = await chat_service.get_chat_title(test_chat.id, test_user.id)

        assert title.title == "Derived Moments Ago"

    async def test_chat_title_falls_back_to_database(self, chat_service, test_chat, test_user, cache):
        title = await chat_service.get_chat_title(test_chat.id, test_user.id)

        assert title.chat_id == test_chat.id
        assert title.title == "New chat"
        assert cache.get_title(test_chat.id, test_user.id) == "New chat"

    async def test_chat_title_follows_generation(self, chat_service, test_chat, test_user):
        await chat_service.get_chat_title(test_chat.id, test_user.id)
        await chat_service.save_generation(test_chat.id, test_user.id, generation("<title>Moon Landing</title>x"))

        assert (await chat_service.get_chat_title(test_chat.id, test_user.id)).title == "Moon Landing"

    async def test_chat_title_is_owner_scoped(self, chat_service, test_chat, test_user, test_user_2):
        await chat_service.get_chat_title(test_chat.id, test_user.id)

        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat_title(test_chat.id, test_user_2.id)

    async def test_deleted_chat_has_no_title(self, chat_service, test_chat, test_user):
        await chat_service.get_chat_title(test_chat.id, test_user.id)
        await chat_service.delete_chat(test_chat.id, test_user.id)

        with pytest.raises(ChatNotFoundError):
            await chat_service.get_chat_title(test_chat.id, test_user.id)

    async def test_move_and_detach_chat(self, chat_service, test_chat, test_user, test_project):
        """An explicit null projectId detaches; an omitted one leaves the chat in place."""
        moved = await chat_service.update_chat(
            test_chat.id, test_user.id, ChatUpdate.model_validate({"projectId": str(test_project.id)})
        )
        assert moved.project_id == test_project.id

        renamed = await chat_service.update_chat(
            test_chat.id, test_user.id, ChatUpdate.model_validate({"title": "Kept"})
        )
        assert renamed.project_id == test_project.id

        detached = await chat_service.update_chat(
            test_chat.id, test_user.id, ChatUpdate.model_validate({"projectId": None})
        )
        assert detached.project_id is None

    async def test_move_to_unknown_project(self, chat_service, test_chat, test_user):
        with pytest.raises(ProjectNotFoundError):
            await chat_service.update_chat(test_chat.id, test_user.id, ChatUpdate(project_id=uuid.uuid4()))

    async def test_delete_chat_reports_hosted_media(self, chat_service, test_db, test_chat, test_user, cache):
        test_db.add(media_message(test_chat.id))
        await test_db.commit()
        cache.set_title(test_chat.id, test_user.id, "Old")

        assets = await chat_service.delete_chat(test_chat.id, test_user.id)

        assert assets == [
            {"public_id": "vision/img1", "resource_type": "image"},
            {"public_id": "vision/aud1", "resource_type": "video"},
        ]
        assert cache.get_title(test_chat.id, test_user.id) is None
        assert await test_db.scalar(select(func.count(Chat.id))) == 0
        assert await test_db.scalar(select(func.count(Message.id))) == 0

    async def test_transcript_renders_stored_reply(self, chat_service, chat_with_messages, test_user):
        transcript = await chat_service.get_transcript(chat_with_messages.id, test_user.id)

        user, assistant = transcript.messages
        assert user.blocks[0].text == "What's the weather in Tokyo?"
        kinds = [block.kind for block in assistant.blocks]
        assert kinds == ["text", "tool", "text"]
        assert assistant.blocks[0].text == "Let me look that up."
        assert assistant.blocks[1].sources[0].url == "https://weather.example/tokyo"


@pytest.mark.asyncio
class TestChatSearch:
    """Test cases for chat search."""

    async def test_search_matches_title_and_content(self, test_db, test_user):
        by_title, by_content, unrelated = await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, title="Kyoto temples"),
            ChatFactory.build(user_id=test_user.id, title="Travel"),
            ChatFactory.build(user_id=test_user.id, title="Groceries"),
        )
        await persist(
            test_db,
            MessageFactory.build(chat_id=by_content.id, text="Best time to visit KYOTO?"),
            MessageFactory.build(chat_id=unrelated.id, text="milk and eggs"),
        )

        results = await ChatService(test_db).search_chats(test_user.id, "kyoto")

        assert {r.id for r in results} == {by_title.id, by_content.id}
        assert all(r.url == f"/~/{r.id}" for r in results)

    async def test_search_orders_by_latest_activity(self, test_db, test_user):
        older, newer = await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, title="Budget older"),
            ChatFactory.build(user_id=test_user.id, title="Budget newer"),
        )
        await persist(test_db, MessageFactory.build(chat_id=older.id, text="fresh activity"))

        results = await ChatService(test_db).search_chats(test_user.id, "budget")

        assert [r.id for r in results] == [older.id, newer.id]

    async def test_search_escapes_wildcards(self, test_db, test_user):
        literal, _ = await persist(
            test_db,
            ChatFactory.build(user_id=test_user.id, title="100% juice"),
            ChatFactory.build(user_id=test_user.id, title="1000 juice"),
        )

        results = await ChatService(test_db).search_chats(test_user.id, "100%")

        assert [r.id for r in results] == [literal.id]

    async def test_search_is_scoped_to_user(self, test_db, test_user, test_user_2):
        await persist(test_db, ChatFactory.build(user_id=test_user_2.id, title="Secret plans"))

        assert await ChatService(test_db).search_chats(test_user.id, "secret") == []

    async def test_blank_query(self, test_db, test_user):
        assert await ChatService(test_db).search_chats(test_user.id, "   ") == []


def cat_photo(**extra) -> dict:
    return {
        "type": "file",
        "url": "https://cdn.example/cat.png",
        "mediaType": "image/png",
        "filename": "cat.png",
        **extra,
    }


@pytest.mark.asyncio
class TestChatLibrary:
    """Test cases for the image library."""

    async def test_lists_uploads_and_generated_images_newest_first(
        self, test_db, test_user, test_user_2, test_chat
    ):
        foreign = await persist(test_db, ChatFactory.build(user_id=test_user_2.id))
        await persist(
            test_db,
            Message(
                chat_id=test_chat.id,
                role=MessageRole.USER,
                parts=[
                    cat_photo(),
                    cat_photo(id="file-2"),
                    {"type": "file", "url": "https://cdn.example/notes.pdf", "mediaType": "application/pdf"},
                    {"type": "text", "text": "What breed is this?"},
                ],
                created_at=datetime(2025, 1, 1, 9, 0),
            ),
            Message(
                chat_id=test_chat.id,
                role=MessageRole.ASSISTANT,
                parts=[
                    {
                        "type": "tool-generateImage",
                        "toolCallId": "call-fox",
                        "state": "output-available",
                        "output": {"success": True, "image": "https://cdn.example/fox.png", "prompt": "a red fox"},
                    },
                    {
                        "type": "tool-generateImage",
                        "toolCallId": "call-failed",
                        "state": "output-error",
                        "errorText": "quota",
                    },
                ],
                created_at=datetime(2025, 1, 1, 10, 0),
            ),
            Message(
                chat_id=foreign.id,
                role=MessageRole.USER,
                parts=[{"type": "file", "url": "https://cdn.example/secret.png", "mediaType": "image/png"}],
            ),
        )

        images = await ChatService(test_db).list_library_images(test_user.id)

        assert [image.url for image in images] == ["https://cdn.example/fox.png", "https://cdn.example/cat.png"]
        generated, uploaded = images
        assert generated.source == "generated"
        assert generated.id == "call-fox"
        assert generated.alt == "a red fox"
        assert uploaded.source == "upload"
        assert uploaded.alt == "cat.png"
        assert uploaded.id.startswith("https://cdn.example/cat.png-2025-01-01T09:00:00")
        assert uploaded.chat_id == test_chat.id

    async def test_same_image_in_separate_messages_is_listed_twice(self, test_db, test_user, test_chat):
        await persist(
            test_db,
            Message(
                chat_id=test_chat.id,
                role=MessageRole.USER,
                parts=[cat_photo(filename=None)],
                created_at=datetime(2025, 1, 1, 9, 0),
            ),
            Message(
                chat_id=test_chat.id,
                role=MessageRole.USER,
                parts=[cat_photo(filename=None)],
                created_at=datetime(2025, 1, 2, 9, 0),
            ),
        )

        images = await ChatService(test_db).list_library_images(test_user.id)

        assert len(images) == 2
        assert images[0].created_at > images[1].created_at
        assert {image.alt for image in images} == {"Image attachment"}

    async def test_empty_library(self, test_db, test_user):
        assert await ChatService(test_db).list_library_images(test_user.id) == []


class TestMessageHelpers:
    def test_hosted_media_skips_failures(self):
        assert [a["public_id"] for a in hosted_media([media_message(uuid.uuid4())])] == ["vision/img1", "vision/aud1"]

    def test_message_response_normalises_legacy_failures(self):
        message = Message(
            id=uuid.uuid4(),
            chat_id=uuid.uuid4(),
            role=MessageRole.ASSISTANT,
            parts=[
                {
                    "type": "tool-webSearch",
                    "toolCallId": "c1",
                    "state": "output-available",
                    "output": {"success": False, "error": "timeout"},
                }
            ],
        )
        message.created_at = datetime(2025, 1, 1, 12, 0)

        response = message_response(message)

        assert response.role == "assistant"
        assert response.parts == [
            {"type": "tool-webSearch", "toolCallId": "c1", "state": "output-error", "errorText": "timeout"}
        ]
