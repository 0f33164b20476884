"""Message part schemas.

A message is an ordered list of parts. Parts are a closed, tagged union
serialised with camelCase keys; tool parts carry the whole lifecycle of one
tool invocation and are keyed by ``toolCallId``.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.exceptions.chat import InvalidPartError, InvalidToolStateTransition

logger = logging.getLogger(__name__)

TOOL_PART_PREFIX = "tool-"
DEFAULT_TOOL_ERROR = "Unknown error occurred"

# Markers some clients interleave with real parts; they carry no content.
IGNORED_PART_TYPES = frozenset({"step-start"})


class PartSchema(BaseModel):
    """Base for everything that travels inside a message or a stream event."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TextPart(PartSchema):
    type: Literal["text"] = "text"
    text: str


class ReasoningPart(PartSchema):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""
    # Transient, only meaningful while a stream is open.
    is_streaming: bool = Field(default=False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "text" not in data and "reasoning" in data:
            data = {**data, "text": data["reasoning"]}
            data.pop("reasoning")
        return data


class Source(PartSchema):
    """A citation record."""

    url: str | None = None
    title: str | None = None
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if "url" not in data and "href" in data:
                data["url"] = data.pop("href")
            if "title" not in data and "name" in data:
                data["title"] = data.pop("name")
        return data


class SourcesPart(PartSchema):
    type: Literal["sources"] = "sources"
    sources: list[Source] = Field(default_factory=list)


class FilePart(PartSchema):
    """An uploaded file referenced by its hosted URL."""

    type: Literal["file", "attachment"] = "file"
    id: str | None = None
    url: str
    media_type: str | None = None
    filename: str | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if "filename" not in data and "name" in data:
                data["filename"] = data.pop("name")
            if "mediaType" not in data and "media_type" not in data and "contentType" in data:
                data["mediaType"] = data.pop("contentType")
        return data

    @property
    def is_image(self) -> bool:
        return bool(self.media_type and self.media_type.startswith("image/"))


class ToolState(str, Enum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolState.OUTPUT_AVAILABLE, ToolState.OUTPUT_ERROR)


_STATE_RANK = {
    ToolState.INPUT_STREAMING: 0,
    ToolState.INPUT_AVAILABLE: 1,
    ToolState.OUTPUT_AVAILABLE: 2,
    ToolState.OUTPUT_ERROR: 2,
}


def tool_part_type(tool_name: str) -> str:
    return f"{TOOL_PART_PREFIX}{tool_name}"


def soft_failure_message(output: Any) -> str | None:
    """Return the error text of a ``{success: false}`` tool output, else None."""
    if isinstance(output, dict) and output.get("success") is False:
        return output.get("error") or output.get("message") or DEFAULT_TOOL_ERROR
    return None


class ToolPart(PartSchema):
    """One tool invocation.

    ``output`` is populated only in ``output-available`` and ``errorText`` only
    in ``output-error``; the input states carry neither.
    """

    type: str
    tool_call_id: str
    state: ToolState = ToolState.INPUT_AVAILABLE
    input: dict[str, Any] | None = None
    output: Any = None
    error_text: str | None = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if not v.startswith(TOOL_PART_PREFIX) or len(v) == len(TOOL_PART_PREFIX):
            raise ValueError("Tool part type must look like 'tool-<name>'")
        return v

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_error(cls, data: Any) -> Any:
        # Older records flag failures inside a successful-looking output.
        if isinstance(data, dict) and data.get("state") == ToolState.OUTPUT_AVAILABLE.value:
            error_text = soft_failure_message(data.get("output"))
            if error_text is not None:
                data = {k: v for k, v in data.items() if k not in ("output", "error_text")}
                data["state"] = ToolState.OUTPUT_ERROR.value
                data["errorText"] = error_text
        return data

    @model_validator(mode="after")
    def check_payload_matches_state(self) -> "ToolPart":
        if self.state is ToolState.OUTPUT_AVAILABLE:
            if self.output is None or self.error_text is not None:
                raise ValueError("output-available requires output and no errorText")
        elif self.state is ToolState.OUTPUT_ERROR:
            if not self.error_text or self.output is not None:
                raise ValueError("output-error requires errorText and no output")
        elif self.output is not None or self.error_text is not None:
            raise ValueError(f"{self.state.value} cannot carry output or errorText")
        return self

    @property
    def tool_name(self) -> str:
        return self.type[len(TOOL_PART_PREFIX):]

    def advance(
        self,
        state: ToolState | str,
        *,
        tool_input: dict[str, Any] | None = None,
        output: Any = None,
        error_text: str | None = None,
    ) -> "ToolPart":
        """Return a copy of this part moved forward to ``state``."""
        target = ToolState(state)
        if self.state.is_terminal or _STATE_RANK[target] < _STATE_RANK[self.state]:
            raise InvalidToolStateTransition(self.state.value, target.value)
        return ToolPart(
            type=self.type,
            tool_call_id=self.tool_call_id,
            state=target,
            input=tool_input if tool_input is not None else self.input,
            output=output,
            error_text=error_text,
        )


def _part_tag(value: Any) -> str | None:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if not isinstance(kind, str):
        return None
    if kind.startswith(TOOL_PART_PREFIX):
        return "tool"
    if kind == "attachment":
        return "file"
    if kind in ("text", "reasoning", "sources", "file"):
        return kind
    return None


MessagePart = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ReasoningPart, Tag("reasoning")],
        Annotated[SourcesPart, Tag("sources")],
        Annotated[FilePart, Tag("file")],
        Annotated[ToolPart, Tag("tool")],
    ],
    Discriminator(_part_tag),
]

_part_adapter: TypeAdapter[MessagePart] = TypeAdapter(MessagePart)


def parse_part(data: Any, *, strict: bool = False) -> MessagePart | None:
    """Parse one raw part.

    Lenient parsing logs and drops anything it cannot read; strict parsing
    raises ``InvalidPartError`` instead.
    """
    if isinstance(data, PartSchema):
        return data
    kind = data.get("type") if isinstance(data, dict) else None
    if kind in IGNORED_PART_TYPES:
        return None
    try:
        return _part_adapter.validate_python(data)
    except ValidationError as exc:
        if strict:
            raise InvalidPartError(
                f"Invalid message part of type '{kind}'",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
        logger.warning(f"Dropping unreadable message part of type '{kind}': {exc.error_count()} error(s)")
        return None


def parse_parts(items: Any, *, strict: bool = False) -> list[MessagePart]:
    if not isinstance(items, list):
        if strict:
            raise InvalidPartError("Message parts must be a list")
        return []
    parts = []
    for item in items:
        part = parse_part(item, strict=strict)
        if part is not None:
            parts.append(part)
    return parts


def dump_parts(parts: list[MessagePart]) -> list[dict[str, Any]]:
    return [part.to_wire() for part in parts]


__all__ = [
    "PartSchema",
    "TextPart",
    "ReasoningPart",
    "Source",
    "SourcesPart",
    "FilePart",
    "ToolState",
    "ToolPart",
    "MessagePart",
    "TOOL_PART_PREFIX",
    "DEFAULT_TOOL_ERROR",
    "tool_part_type",
    "soft_failure_message",
    "parse_part",
    "parse_parts",
    "dump_parts",
]
