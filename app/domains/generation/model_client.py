"""Gemini model client for the generation loop.

Each model turn is streamed as ``ModelEvent``s: text deltas, reasoning
deltas and tool-call requests. The conversation itself is kept in Gemini's
``contents`` shape and only this module knows what that looks like.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import google.generativeai as genai
import httpx
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from app.core.config import settings
from app.exceptions.ai import (
    AIConfigurationError,
    AIContentFilterError,
    AIQuotaExceededError,
    AIRateLimitError,
    AIServiceError,
    AIServiceUnavailableError,
    AITimeoutError,
)
from app.schemas.generation import ClientMessage
from app.schemas.parts import FilePart, TextPart, ToolPart, ToolState

from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class ModelEvent:
    kind: Literal["text", "reasoning", "tool-call"]
    text: str = ""
    tool_name: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolCall:
    tool_call_id: str
    tool_name: str
    arguments: dict[str, Any]

    @classmethod
    def from_event(cls, event: ModelEvent) -> "ToolCall":
        return cls(
            tool_call_id=f"call_{uuid.uuid4().hex[:24]}",
            tool_name=event.tool_name or "",
            arguments=event.arguments,
        )


class ModelClient(Protocol):
    async def build_contents(self, messages: list[ClientMessage]) -> list[Any]: ...

    def stream_turn(
        self, contents: list[Any], tools: list[dict[str, Any]]
    ) -> AsyncIterator[ModelEvent]: ...

    def append_step(
        self,
        contents: list[Any],
        text: str,
        results: list[tuple[ToolCall, dict[str, Any]]],
    ) -> None: ...


def to_plain(value: Any) -> Any:
    """Convert proto map/repeated values from the SDK into plain Python."""
    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping) or hasattr(value, "items"):
        return {str(k): to_plain(v) for k, v in value.items()}
    try:
        return [to_plain(v) for v in value]
    except TypeError:
        return value


def classify_model_error(error: Exception) -> AIServiceError:
    message = str(error)
    lowered = message.lower()
    if isinstance(error, TimeoutError) or "deadline" in lowered or "timed out" in lowered:
        return AITimeoutError()
    if "rate" in lowered and "limit" in lowered:
        return AIRateLimitError("Rate limit exceeded")
    if "quota" in lowered or "resource exhausted" in lowered:
        return AIQuotaExceededError("API quota exceeded")
    if "safety" in lowered or "blocked" in lowered:
        return AIContentFilterError("Content blocked by safety filters")
    if "unavailable" in lowered or "503" in lowered:
        return AIServiceUnavailableError()
    return AIServiceError(f"AI service error: {message}")


def _function_response(part: ToolPart) -> dict[str, Any]:
    if part.state is ToolState.OUTPUT_AVAILABLE:
        return part.output if isinstance(part.output, dict) else {"result": part.output}
    return {"success": False, "error": part.error_text}


class GeminiModelClient:
    """Streams model turns from Google Gemini."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        system_instruction: str = SYSTEM_PROMPT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        api_key = api_key or settings.pick_gemini_api_key()
        if not api_key:
            raise AIConfigurationError("Gemini API key not configured")

        self.model_name = model_name or settings.gemini_model
        self._transport = transport
        try:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_instruction,
                safety_settings={
                    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                },
                generation_config=genai.types.GenerationConfig(
                    candidate_count=1,
                    max_output_tokens=settings.gemini_max_tokens,
                    temperature=settings.generation_temperature,
                ),
            )
        except Exception as e:
            logger.error(f"Failed to initialize Gemini client: {str(e)}")
            raise AIConfigurationError(f"Failed to initialize AI service: {str(e)}") from e

        logger.debug(f"📊 Gemini model: {self.model_name}")

    async def _inline_image(self, client: httpx.AsyncClient, part: FilePart) -> dict[str, Any]:
        try:
            response = await client.get(part.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch attachment {part.url}: {str(e)}")
            return {"text": f"[Attached image: {part.filename or part.url}]({part.url})"}
        return {"inline_data": {"mime_type": part.media_type, "data": response.content}}

    async def build_contents(self, messages: list[ClientMessage]) -> list[dict[str, Any]]:
        """Convert client messages into Gemini contents.

        Completed tool calls are replayed as function call/response pairs;
        reasoning and citation parts stay on the client.
        """
        contents: list[dict[str, Any]] = []
        async with httpx.AsyncClient(
            timeout=settings.tool_http_timeout, transport=self._transport, follow_redirects=True
        ) as client:
            for message in messages:
                if message.role == "user":
                    parts = []
                    for part in message.parts:
                        if isinstance(part, TextPart) and part.text:
                            parts.append({"text": part.text})
                        elif isinstance(part, FilePart):
                            if part.is_image:
                                parts.append(await self._inline_image(client, part))
                            else:
                                name = part.filename or part.url
                                parts.append({"text": f"[Attached file: {name}]({part.url})"})
                    if parts:
                        contents.append({"role": "user", "parts": parts})
                    continue

                model_parts: list[dict[str, Any]] = []
                responses: list[dict[str, Any]] = []
                for part in message.parts:
                    if isinstance(part, TextPart) and part.text:
                        if responses:
                            self._flush(contents, model_parts, responses)
                            model_parts, responses = [], []
                        model_parts.append({"text": part.text})
                    elif isinstance(part, ToolPart) and part.state.is_terminal:
                        model_parts.append(
                            {"function_call": {"name": part.tool_name, "args": part.input or {}}}
                        )
                        responses.append(
                            {
                                "function_response": {
                                    "name": part.tool_name,
                                    "response": _function_response(part),
                                }
                            }
                        )
                self._flush(contents, model_parts, responses)
        return contents

    @staticmethod
    def _flush(contents: list[dict[str, Any]], model_parts: list, responses: list) -> None:
        if model_parts:
            contents.append({"role": "model", "parts": model_parts})
        if responses:
            contents.append({"role": "user", "parts": responses})

    def append_step(
        self,
        contents: list[dict[str, Any]],
        text: str,
        results: list[tuple[ToolCall, dict[str, Any]]],
    ) -> None:
        model_parts: list[dict[str, Any]] = [{"text": text}] if text else []
        model_parts.extend(
            {"function_call": {"name": call.tool_name, "args": call.arguments}} for call, _ in results
        )
        responses = [
            {"function_response": {"name": call.tool_name, "response": payload}}
            for call, payload in results
        ]
        self._flush(contents, model_parts, responses)

    async def stream_turn(
        self, contents: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[ModelEvent]:
        try:
            response = await self.model.generate_content_async(
                contents,
                tools=[{"function_declarations": tools}] if tools else None,
                tool_config={"function_calling_config": {"mode": "AUTO"}} if tools else None,
                stream=True,
            )
            async for chunk in response:
                for event in self._events_from_chunk(chunk):
                    yield event
        except AIServiceError:
            raise
        except Exception as e:
            logger.error(f"Gemini request failed: {str(e)}")
            raise classify_model_error(e) from e

    @staticmethod
    def _events_from_chunk(chunk: Any) -> list[ModelEvent]:
        candidates = getattr(chunk, "candidates", None) or []
        if not candidates:
            feedback = getattr(chunk, "prompt_feedback", None)
            if feedback is not None and getattr(feedback, "block_reason", None):
                raise AIContentFilterError("Prompt blocked by safety filters")
            return []

        content = getattr(candidates[0], "content", None)
        events = []
        for part in getattr(content, "parts", None) or []:
            function_call = getattr(part, "function_call", None)
            if function_call is not None and getattr(function_call, "name", ""):
                events.append(
                    ModelEvent(
                        kind="tool-call",
                        tool_name=function_call.name,
                        arguments=to_plain(function_call.args) or {},
                    )
                )
                continue
            text = getattr(part, "text", "")
            if text:
                kind = "reasoning" if getattr(part, "thought", False) else "text"
                events.append(ModelEvent(kind=kind, text=text))
        return events
