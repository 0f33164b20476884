"""Generation request and stream event schemas."""

from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from .parts import MessagePart, PartSchema, Source, parse_parts


class StreamEventType(str, Enum):
    START = "start"
    START_STEP = "start-step"
    TEXT_DELTA = "text-delta"
    REASONING_DELTA = "reasoning-delta"
    REASONING_END = "reasoning-end"
    TOOL_INPUT_START = "tool-input-start"
    TOOL_INPUT_AVAILABLE = "tool-input-available"
    TOOL_OUTPUT_AVAILABLE = "tool-output-available"
    TOOL_OUTPUT_ERROR = "tool-output-error"
    SOURCES = "sources"
    FINISH_STEP = "finish-step"
    FINISH = "finish"
    ERROR = "error"


class FinishReason(str, Enum):
    STOP = "stop"
    STEP_LIMIT = "step-limit"


STREAM_DONE = "data: [DONE]\n\n"


class StreamEvent(PartSchema):
    """One server-sent event of a generation stream."""

    type: StreamEventType
    message_id: str | None = None
    step: int | None = None
    delta: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    input: dict[str, Any] | None = None
    output: Any = None
    error_text: str | None = None
    sources: list[Source] | None = None
    finish_reason: FinishReason | None = None

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


class ClientMessage(PartSchema):
    """A message as the client sends it: a role plus parts."""

    id: str | None = None
    role: Literal["user", "assistant"]
    parts: list[MessagePart] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_plain_content(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("parts") and isinstance(data.get("content"), str):
            data = {**data, "parts": [{"type": "text", "text": data["content"]}]}
        return data

    @field_validator("parts", mode="before")
    @classmethod
    def parse_leniently(cls, v: Any) -> Any:
        return parse_parts(v)


class GenerateRequest(PartSchema):
    """Body of ``POST /api/generate``."""

    chat_id: UUID | None = None
    messages: list[ClientMessage] = Field(..., min_length=1)
    send_reasoning: bool = True
    send_sources: bool = True


class GenerationResult(PartSchema):
    """What a completed generation hands to its completion callback."""

    text: str
    parts: list[MessagePart]
    finish_reason: FinishReason
    steps: int


__all__ = [
    "StreamEventType",
    "FinishReason",
    "StreamEvent",
    "STREAM_DONE",
    "ClientMessage",
    "GenerateRequest",
    "GenerationResult",
]
