"""Generation orchestrator.

Runs the bounded model/tool loop for one request and exposes it as an async
stream of ``StreamEvent``s. A step streams one model turn, executes the tool
calls it requested concurrently, and feeds the results back for the next
step. The loop ends when a turn requests no tools or the step ceiling is
reached; the completion callback then runs once with the assembled message.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from app.core.config import settings
from app.domains.chat.reconciler import MessageAssembler, citations_from_output
from app.domains.tools.registry import ToolRegistry
from app.domains.tools.web import EXTRACT_WEB_URL, WEB_SEARCH
from app.exceptions.ai import AITimeoutError
from app.exceptions.base import BaseAppException
from app.exceptions.tools import ToolInputValidationError, UnknownToolError
from app.schemas.generation import (
    ClientMessage,
    FinishReason,
    GenerationResult,
    StreamEvent,
    StreamEventType,
)
from app.schemas.parts import soft_failure_message

from .model_client import ModelClient, ToolCall

logger = logging.getLogger(__name__)

OnFinish = Callable[[GenerationResult], Awaitable[None]]

CITING_TOOLS = (WEB_SEARCH, EXTRACT_WEB_URL)
GENERIC_FAILURE = "Failed to process chat request"


class _ToolOutcome:
    __slots__ = ("output", "error_text")

    def __init__(self, output: dict[str, Any] | None = None, error_text: str | None = None):
        self.output = output
        self.error_text = error_text

    @property
    def model_payload(self) -> dict[str, Any]:
        if self.output is not None:
            return self.output
        return {"success": False, "error": self.error_text}


class _Run:
    """State of one generation request."""

    def __init__(self, queue: asyncio.Queue, send_reasoning: bool, send_sources: bool):
        self.queue = queue
        self.send_reasoning = send_reasoning
        self.send_sources = send_sources
        self.assembler = MessageAssembler()
        self.completed = False

    def emit(self, event_type: StreamEventType, **fields) -> None:
        if not self.send_reasoning and event_type in (
            StreamEventType.REASONING_DELTA,
            StreamEventType.REASONING_END,
        ):
            return
        event = StreamEvent(type=event_type, **fields)
        self.assembler.apply(event)
        self.queue.put_nowait(event)


class GenerationService:
    """Drives the model/tool loop and streams its events."""

    def __init__(
        self,
        model: ModelClient,
        registry: ToolRegistry,
        *,
        max_steps: int | None = None,
        timeout: float | None = None,
    ):
        self.model = model
        self.registry = registry
        self.max_steps = max_steps or settings.generation_max_steps
        self.timeout = timeout or settings.generation_timeout

    async def stream(
        self,
        messages: list[ClientMessage],
        *,
        on_finish: OnFinish | None = None,
        send_reasoning: bool = True,
        send_sources: bool = True,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one generation.

        Ends with a ``finish`` event on success or a single ``error`` event
        when a tool raised, the model failed, or the wall-clock limit passed.
        ``on_finish`` only runs on success. Once the loop has completed, the
        wall-clock limit no longer applies and the callback is not cancelled
        when the consumer goes away.
        """
        queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        run = _Run(queue, send_reasoning, send_sources)
        producer = asyncio.create_task(self._produce(run, messages, on_finish))
        deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        event = await queue.get()
                except TimeoutError:
                    if run.completed:
                        # Only the completion callback is left; let it finish.
                        deadline = None
                        continue
                    logger.error(f"Generation exceeded {self.timeout}s, aborting")
                    producer.cancel()
                    yield StreamEvent(type=StreamEventType.ERROR, error_text=AITimeoutError().message)
                    return
                if event is None:
                    return
                yield event
        finally:
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    async def _produce(
        self, run: _Run, messages: list[ClientMessage], on_finish: OnFinish | None
    ) -> None:
        try:
            result = await self._loop(run, messages)
            run.completed = True
            if on_finish is not None:
                await asyncio.shield(on_finish(result))
            run.emit(StreamEventType.FINISH, finish_reason=result.finish_reason)
        except BaseAppException as e:
            logger.error(f"Generation aborted: {e.message}")
            run.queue.put_nowait(StreamEvent(type=StreamEventType.ERROR, error_text=e.message))
        except Exception as e:
            logger.exception(f"Generation failed: {str(e)}")
            run.queue.put_nowait(StreamEvent(type=StreamEventType.ERROR, error_text=GENERIC_FAILURE))
        finally:
            run.queue.put_nowait(None)

    async def _loop(self, run: _Run, messages: list[ClientMessage]) -> GenerationResult:
        run.emit(StreamEventType.START, message_id=f"msg-{uuid.uuid4().hex}")
        contents = await self.model.build_contents(messages)
        declarations = self.registry.declarations()
        finish_reason = FinishReason.STEP_LIMIT
        step = 0

        while step < self.max_steps:
            step += 1
            run.emit(StreamEventType.START_STEP, step=step)

            text_chunks: list[str] = []
            calls: list[ToolCall] = []
            reasoning_open = False
            async for model_event in self.model.stream_turn(contents, declarations):
                if model_event.kind == "text":
                    text_chunks.append(model_event.text)
                    run.emit(StreamEventType.TEXT_DELTA, delta=model_event.text)
                elif model_event.kind == "reasoning":
                    reasoning_open = True
                    run.emit(StreamEventType.REASONING_DELTA, delta=model_event.text)
                else:
                    call = ToolCall.from_event(model_event)
                    calls.append(call)
                    run.emit(
                        StreamEventType.TOOL_INPUT_START,
                        tool_call_id=call.tool_call_id,
                        tool_name=call.tool_name,
                    )
                    run.emit(
                        StreamEventType.TOOL_INPUT_AVAILABLE,
                        tool_call_id=call.tool_call_id,
                        tool_name=call.tool_name,
                        input=call.arguments,
                    )
            if reasoning_open:
                run.emit(StreamEventType.REASONING_END)

            results = await self._run_tools(run, calls)
            run.emit(StreamEventType.FINISH_STEP, step=step)
            logger.info(f"Step {step}: {len(calls)} tool call(s)")

            if not calls:
                finish_reason = FinishReason.STOP
                break
            self.model.append_step(contents, "".join(text_chunks), results)

        if finish_reason is FinishReason.STEP_LIMIT:
            logger.info(f"Generation stopped at the {self.max_steps}-step limit")

        return GenerationResult(
            text=run.assembler.text,
            parts=run.assembler.finalize(),
            finish_reason=finish_reason,
            steps=step,
        )

    async def _run_tools(
        self, run: _Run, calls: list[ToolCall]
    ) -> list[tuple[ToolCall, dict[str, Any]]]:
        """Execute a step's tool calls concurrently, reporting in completion order."""
        if not calls:
            return []

        async def execute(call: ToolCall) -> tuple[ToolCall, _ToolOutcome]:
            return call, await self._execute_call(call)

        tasks = [asyncio.create_task(execute(call)) for call in calls]
        results = []
        try:
            for finished in asyncio.as_completed(tasks):
                call, outcome = await finished
                self._report(run, call, outcome)
                results.append((call, outcome.model_payload))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return results

    async def _execute_call(self, call: ToolCall) -> _ToolOutcome:
        try:
            output = await self.registry.execute(call.tool_name, call.arguments)
        except (UnknownToolError, ToolInputValidationError) as e:
            logger.warning(f"Tool call {call.tool_name} rejected: {e.message}")
            return _ToolOutcome(error_text=e.message)

        error_text = soft_failure_message(output)
        if error_text is not None:
            logger.warning(f"Tool {call.tool_name} reported failure: {error_text}")
            # The model still sees the whole payload.
            return _ToolOutcome(output=output, error_text=error_text)
        return _ToolOutcome(output=output)

    def _report(self, run: _Run, call: ToolCall, outcome: _ToolOutcome) -> None:
        if outcome.error_text is not None:
            run.emit(
                StreamEventType.TOOL_OUTPUT_ERROR,
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                error_text=outcome.error_text,
            )
            return

        run.emit(
            StreamEventType.TOOL_OUTPUT_AVAILABLE,
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            output=outcome.output,
        )
        if run.send_sources and call.tool_name in CITING_TOOLS:
            sources = citations_from_output(outcome.output)
            if sources:
                run.emit(StreamEventType.SOURCES, sources=sources)
