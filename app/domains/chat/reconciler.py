"""Message-part reconciliation.

Turns a generation event stream into the ordered part list of one assistant
message, and turns part lists (live or stored) into displayable blocks. The
same rules apply to both paths so a replayed chat renders exactly like the
live one did, minus the streaming indicators.
"""

import logging
import re
from typing import Any

from app.exceptions.chat import StreamProtocolError
from app.schemas.chat import RenderedBlock, RenderedMessage
from app.schemas.generation import StreamEvent, StreamEventType
from app.schemas.parts import (
    DEFAULT_TOOL_ERROR,
    FilePart,
    MessagePart,
    ReasoningPart,
    Source,
    SourcesPart,
    TextPart,
    ToolPart,
    ToolState,
    tool_part_type,
)

logger = logging.getLogger(__name__)

_TITLE_MARKER = re.compile(r"<title>.*?</title>", re.DOTALL)
_TITLE_CAPTURE = re.compile(r"<title>(.*?)</title>", re.DOTALL)

TOOL_ERROR_TITLES = {
    "webSearch": "Web search failed",
    "extractWebUrl": "Content extraction failed",
    "generateImage": "Image generation failed",
    "textToSpeech": "Speech generation failed",
}


def strip_title_marker(text: str) -> str:
    """Remove every ``<title>...</title>`` marker and trim the result.

    Text without a marker is returned untouched.
    """
    if "<title>" not in text:
        return text
    stripped = text
    while True:
        reduced = _TITLE_MARKER.sub("", stripped)
        if reduced == stripped:
            return stripped.strip()
        stripped = reduced


def extract_title(text: str) -> str | None:
    """Return the first non-empty title marker in ``text``, if any."""
    for match in _TITLE_CAPTURE.finditer(text):
        title = match.group(1).strip()
        if title:
            return title[:255]
    return None


class MessageAssembler:
    """Reduces stream events to the ordered part list of one message.

    Text and reasoning deltas extend the trailing part of the same kind.
    Tool parts are keyed by ``toolCallId`` and keep the position where they
    were first announced, whatever order their results arrive in.
    """

    def __init__(self):
        self.parts: list[MessagePart] = []
        self._tool_positions: dict[str, int] = {}

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def apply(self, event: StreamEvent) -> None:
        kind = event.type
        if kind is StreamEventType.TEXT_DELTA:
            self._append_text(event.delta or "")
        elif kind is StreamEventType.REASONING_DELTA:
            self._append_reasoning(event.delta or "")
        elif kind is StreamEventType.REASONING_END:
            self._close_reasoning()
        elif kind is StreamEventType.TOOL_INPUT_START:
            self._announce_tool(event, ToolState.INPUT_STREAMING)
        elif kind is StreamEventType.TOOL_INPUT_AVAILABLE:
            self._announce_tool(event, ToolState.INPUT_AVAILABLE)
        elif kind is StreamEventType.TOOL_OUTPUT_AVAILABLE:
            self._resolve_tool(event, ToolState.OUTPUT_AVAILABLE)
        elif kind is StreamEventType.TOOL_OUTPUT_ERROR:
            self._resolve_tool(event, ToolState.OUTPUT_ERROR)
        elif kind is StreamEventType.SOURCES:
            if event.sources:
                self._open_part(SourcesPart(sources=event.sources))

    def finalize(self) -> list[MessagePart]:
        self._close_reasoning()
        return list(self.parts)

    def _close_reasoning(self) -> None:
        for part in self.parts:
            if isinstance(part, ReasoningPart) and part.is_streaming:
                part.is_streaming = False

    def _open_part(self, part: MessagePart) -> None:
        self._close_reasoning()
        self.parts.append(part)

    def _append_text(self, delta: str) -> None:
        if not delta:
            return
        last = self.parts[-1] if self.parts else None
        if isinstance(last, TextPart):
            last.text += delta
        else:
            self._open_part(TextPart(text=delta))

    def _append_reasoning(self, delta: str) -> None:
        if not delta:
            return
        last = self.parts[-1] if self.parts else None
        if isinstance(last, ReasoningPart) and last.is_streaming:
            last.text += delta
        else:
            self._open_part(ReasoningPart(text=delta, is_streaming=True))

    def _announce_tool(self, event: StreamEvent, state: ToolState) -> None:
        call_id = self._require_call_id(event)
        position = self._tool_positions.get(call_id)
        if position is None:
            if not event.tool_name:
                raise StreamProtocolError(
                    "Tool announcement without a tool name", details={"toolCallId": call_id}
                )
            self._tool_positions[call_id] = len(self.parts)
            self._open_part(
                ToolPart(
                    type=tool_part_type(event.tool_name),
                    tool_call_id=call_id,
                    state=state,
                    input=event.input,
                )
            )
            return
        current = self.parts[position]
        if current.state is state and event.input is None:
            return
        self.parts[position] = current.advance(state, tool_input=event.input)

    def _resolve_tool(self, event: StreamEvent, state: ToolState) -> None:
        call_id = self._require_call_id(event)
        position = self._tool_positions.get(call_id)
        if position is None:
            raise StreamProtocolError(
                "Tool result for a call that was never announced",
                details={"toolCallId": call_id},
            )
        current = self.parts[position]
        if state is ToolState.OUTPUT_AVAILABLE:
            self.parts[position] = current.advance(state, output=event.output)
        else:
            self.parts[position] = current.advance(
                state, error_text=event.error_text or DEFAULT_TOOL_ERROR
            )

    @staticmethod
    def _require_call_id(event: StreamEvent) -> str:
        if not event.tool_call_id:
            raise StreamProtocolError(f"{event.type.value} event without toolCallId")
        return event.tool_call_id


def progress_label(tool_name: str, tool_input: dict[str, Any] | None) -> str:
    tool_input = tool_input or {}
    if tool_name == "webSearch":
        query = str(tool_input.get("query") or "").strip()
        return f'Searching web for "{query}"..' if query else "Searching web.."
    if tool_name == "extractWebUrl":
        urls = tool_input.get("urls") or []
        if urls:
            return f"Extracting content from {len(urls)} URL{'s' if len(urls) > 1 else ''}.."
        return "Extracting content.."
    if tool_name == "generateImage":
        return "Generating image.."
    if tool_name == "textToSpeech":
        return "Generating speech..."
    return f"Running {tool_name}.."


def dedupe_sources(sources: list[Source]) -> list[Source]:
    """Drop URL-less entries and keep the first entry for each URL."""
    seen = set()
    unique = []
    for source in sources:
        if not source.url or source.url in seen:
            continue
        seen.add(source.url)
        unique.append(source)
    return unique


def citations_from_output(output: Any) -> list[Source]:
    if not isinstance(output, dict):
        return []
    return dedupe_sources(
        [
            Source(
                url=item.get("url"),
                title=item.get("title") or item.get("url"),
                description=item.get("content"),
            )
            for item in output.get("results") or []
            if isinstance(item, dict)
        ]
    )


def _render_tool(part: ToolPart) -> RenderedBlock | None:
    name = part.tool_name
    base = {"kind": "tool", "tool_name": name, "tool_call_id": part.tool_call_id, "state": part.state}

    if part.state in (ToolState.INPUT_STREAMING, ToolState.INPUT_AVAILABLE):
        return RenderedBlock(**base, label=progress_label(name, part.input))

    if part.state is ToolState.OUTPUT_ERROR:
        return RenderedBlock(
            **base,
            error_title=TOOL_ERROR_TITLES.get(name, "Tool call failed"),
            error_text=part.error_text or DEFAULT_TOOL_ERROR,
        )

    output = part.output if isinstance(part.output, dict) else {}
    if name in ("webSearch", "extractWebUrl"):
        sources = citations_from_output(output)
        return RenderedBlock(**base, sources=sources) if sources else None
    if name == "generateImage" and output.get("image"):
        return RenderedBlock(
            **base, media_type="image", media_url=output["image"], text=output.get("prompt")
        )
    if name == "textToSpeech" and output.get("audioUrl"):
        return RenderedBlock(
            **base, media_type="audio", media_url=output["audioUrl"], text=output.get("text")
        )
    return None


def render_message(role: str, parts: list[MessagePart], *, live: bool = False) -> RenderedMessage:
    """Map a message's parts to displayable blocks.

    With ``live=False`` (replay of a stored message) nothing is shown as
    still streaming.
    """
    attachments = []
    blocks = []
    for part in parts:
        if isinstance(part, FilePart):
            attachments.append(part)
        elif isinstance(part, TextPart):
            text = strip_title_marker(part.text).strip()
            if text:
                blocks.append(RenderedBlock(kind="text", text=text))
        elif isinstance(part, ReasoningPart):
            streaming = part.is_streaming if live else False
            if part.text:
                blocks.append(
                    RenderedBlock(
                        kind="reasoning",
                        text=part.text,
                        is_streaming=streaming,
                        collapsed=not streaming,
                    )
                )
        elif isinstance(part, SourcesPart):
            sources = dedupe_sources(part.sources)
            if sources:
                blocks.append(RenderedBlock(kind="sources", sources=sources))
        elif isinstance(part, ToolPart):
            block = _render_tool(part)
            if block is not None:
                blocks.append(block)
        else:
            logger.debug(f"No renderer for part type {getattr(part, 'type', None)}")
    return RenderedMessage(role=role, attachments=attachments, blocks=blocks)
