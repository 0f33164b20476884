"""Streaming generation endpoint."""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Body, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.dependencies import (
    get_chat_cache,
    get_current_user,
    get_db,
    get_session_factory,
    validate_token,
)
from app.domains.chat.service import ChatService
from app.domains.tools.registry import ToolRegistry
from app.domains.tools.service import build_tool_registry
from app.schemas.generation import STREAM_DONE, GenerateRequest, GenerationResult
from app.shared.cache import ChatListCache
from models.user import User

from .model_client import GeminiModelClient, ModelClient
from .service import GenerationService, OnFinish

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["generation"],
    dependencies=[Depends(validate_token)],
)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def get_model_client() -> ModelClient:
    """Gemini client; raises AIConfigurationError when no key is configured."""
    return GeminiModelClient()


def get_tool_registry() -> ToolRegistry:
    return build_tool_registry()


def get_generation_service(
    model: ModelClient = Depends(get_model_client),
    registry: ToolRegistry = Depends(get_tool_registry),
) -> GenerationService:
    return GenerationService(model, registry)


def persist_reply(
    session_factory: async_sessionmaker[AsyncSession],
    cache: ChatListCache,
    chat_id,
    user_id,
) -> OnFinish:
    """Completion callback storing the assistant reply in its own session."""

    async def on_finish(result: GenerationResult) -> None:
        async with session_factory() as session:
            await ChatService(session, cache).save_generation(chat_id, user_id, result)
        logger.info(
            f"💾 Stored reply for chat {chat_id} ({result.steps} step(s), {result.finish_reason.value})"
        )

    return on_finish


@router.post("/generate")
async def generate(
    request_data: GenerateRequest = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    cache: ChatListCache = Depends(get_chat_cache),
    generation: GenerationService = Depends(get_generation_service),
):
    """Stream an assistant reply as server-sent events.

    With a ``chatId`` the user turn is stored before streaming starts and
    the reply once it completes; without one the chat is temporary.
    """
    on_finish = None
    if request_data.chat_id is not None:
        chat_service = ChatService(db, cache)
        await chat_service.get_chat(request_data.chat_id, current_user.id)

        user_turn = next(
            (message for message in reversed(request_data.messages) if message.role == "user"),
            None,
        )
        if user_turn is not None:
            await chat_service.record_user_message(request_data.chat_id, current_user.id, user_turn)
        on_finish = persist_reply(session_factory, cache, request_data.chat_id, current_user.id)

    async def event_stream() -> AsyncIterator[str]:
        async for event in generation.stream(
            request_data.messages,
            on_finish=on_finish,
            send_reasoning=request_data.send_reasoning,
            send_sources=request_data.send_sources,
        ):
            yield event.to_sse()
        yield STREAM_DONE

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
