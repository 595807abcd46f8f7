"""
Orchestrator core -- the tool loop that ties everything together.

The orchestrator:
1. Injects a system prompt when the conversation has none
2. Strips old reasoning and clamps the history to the character budget
3. Sends the request through the provider (tools attached when enabled)
4. Detects a tool call, structured or written into the text
5. Executes it, appends the tool result plus a system reminder, and loops
6. Returns (or streams) the final answer once no tool call is left

Two surfaces share that loop.  :meth:`Orchestrator.complete` reads whole
responses and executes every call in the order returned.
:meth:`Orchestrator.stream_turn` streams one response as semantic events and
ends right after the first tool call fired; :meth:`Orchestrator.stream`
re-enters it with the updated history until an answer arrives.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator

from mooncow.context.budget import ContextBudget, strip_thinking_from_history
from mooncow.llm.events import (
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from mooncow.llm.model_resolver import AUTO, ModelResolver
from mooncow.llm.providers.base import Provider
from mooncow.llm.segmenter import THINK_CLOSE, THINK_OPEN, ThinkSegmenter
from mooncow.llm.text_tool_parser import (
    TOOL_TAG_RE,
    TextToolCallExtractor,
    looks_like_tool_call,
    remove_think_blocks,
    sanitize_answer,
)
from mooncow.llm.tool_call_assembler import ToolCallAssembler
from mooncow.llm.types import (
    TEXT_CALL_PREFIX,
    AssembledAssistant,
    CompletionRequest,
    Message,
    ToolCall,
)
from mooncow.prompts.reminders import build_tool_call_system_box
from mooncow.prompts.system import build_system_prompt
from mooncow.tools.base import is_error_result
from mooncow.tools.registry import ToolRegistry
from mooncow.tools.summarizer import render_tool_message
from mooncow.tools.validation import validate_arguments
from mooncow.types import (
    ErrorCode,
    LoopExceededError,
    MooncowError,
    ToolExecutionError,
    UnknownToolError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_LOOPS = 6

_TOOL_OPEN_RE = re.compile(r"<tool(?:_call)?>", re.IGNORECASE)
_TOOL_OPEN_PARTIAL_RE = re.compile(
    "(?:"
    + "|".join(
        re.escape(p)
        for p in sorted(
            {t[:i] for t in ("<tool>", "<tool_call>") for i in range(1, len(t))},
            key=len,
            reverse=True,
        )
    )
    + r")\Z",
    re.IGNORECASE,
)


class LoopState(str, Enum):
    REQUESTING = "requesting"
    INSPECTING = "inspecting"
    TOOL_EXECUTING = "tool_executing"
    ANSWERING = "answering"
    FAILED = "failed"


def _synthetic_call_id() -> str:
    return f"{TEXT_CALL_PREFIX}{uuid.uuid4().hex[:12]}"


class ToolMarkupBuffer:
    """
    Keeps ``<tool>``/``<tool_call>`` markup out of the displayed stream.

    Text from an opening tag on is held until the matching close tag
    arrives; :meth:`feed` then hands the markup back for parsing.  A trailing
    fragment that could still become an opening tag is carried to the next
    delta.  :meth:`release` returns everything held, for markup that turned
    out not to be a call.
    """

    def __init__(self) -> None:
        self.carry = ""
        self.held = ""

    def feed(self, delta: str) -> tuple[str, str | None]:
        visible = ""
        if self.held:
            self.held += delta
        else:
            text = self.carry + delta
            self.carry = ""
            opening = _TOOL_OPEN_RE.search(text)
            if not opening:
                partial = _TOOL_OPEN_PARTIAL_RE.search(text)
                if partial:
                    self.carry = text[partial.start():]
                    text = text[: partial.start()]
                return text, None
            visible = text[: opening.start()]
            self.held = text[opening.start():]

        match = TOOL_TAG_RE.search(self.held)
        if not match:
            return visible, None
        markup = self.held[: match.end()]
        # Whatever follows the close tag is looked at again with the next delta.
        self.carry = self.held[match.end():]
        self.held = ""
        return visible, markup

    def release(self) -> str:
        out = self.carry + self.held
        self.carry = self.held = ""
        return out


class Orchestrator:
    """
    Main orchestrator loop.

    Parameters
    ----------
    provider : Provider
        Completion provider (transport adapter).
    registry : ToolRegistry
        Registered tools.  An empty registry disables tool calling.
    model : str
        Model id; ``"auto"`` is resolved through *model_resolver* once per run.
    budget : ContextBudget
        Character budget applied before every request.
    model_resolver : ModelResolver
        Used to resolve ``"auto"``.
    extractor : TextToolCallExtractor
        Parser for tool calls written into the assistant text.
    system_prompt : str | None
        Injected when the history has no system message.  ``None`` builds
        the default prompt from the registered tools; ``""`` injects nothing.
    max_tool_loops : int
        Tool rounds allowed per run; one more raises ``LoopExceededError``.
    tool_timeout : float
        Max seconds for a single tool execution.
    tools_enabled : bool
        Attach tool schemas and look for textual calls.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry | None = None,
        *,
        model: str = AUTO,
        temperature: float = 0.7,
        budget: ContextBudget | None = None,
        model_resolver: ModelResolver | None = None,
        extractor: TextToolCallExtractor | None = None,
        system_prompt: str | None = None,
        max_tool_loops: int = DEFAULT_MAX_TOOL_LOOPS,
        tool_timeout: float = 60.0,
        tools_enabled: bool = True,
        think_open: str = THINK_OPEN,
        think_close: str = THINK_CLOSE,
    ) -> None:
        self.provider = provider
        self.registry = registry if registry is not None else ToolRegistry()
        self.model = model
        self.temperature = temperature
        self.budget = budget or ContextBudget()
        self.model_resolver = model_resolver
        self.extractor = extractor or TextToolCallExtractor()
        self.max_tool_loops = max_tool_loops
        self.tool_timeout = tool_timeout
        self.tools_enabled = tools_enabled
        self.think_open = think_open
        self.think_close = think_close
        if system_prompt is None:
            system_prompt = build_system_prompt(
                self.registry.list() if self.tools_active else None,
                open_tag=think_open,
                close_tag=think_close,
            )
        self.system_prompt = system_prompt

    @property
    def tools_active(self) -> bool:
        return self.tools_enabled and len(self.registry) > 0

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def complete(self, messages: list[Message]) -> str:
        """
        Run the tool loop on whole responses and return the final answer.

        Raises ``TransportError``, ``ProtocolError`` or ``LoopExceededError``.
        """
        history = self._prepare(messages)
        request = await self._new_request(stream=False)
        tool_calls_count = 0
        loops = 0

        while True:
            self._transition(LoopState.REQUESTING, loops)
            request.messages = self._request_messages(history)
            assembled = await self._request_whole(request)

            self._transition(LoopState.INSPECTING, loops)
            calls = list(assembled.tool_calls)
            unparsed = False
            if not calls and self.tools_active:
                visible = remove_think_blocks(assembled.content, self.think_open, self.think_close)
                parsed = self.extractor.extract(visible)
                if parsed is not None:
                    logger.info("Textual tool call found: %s", parsed.name)
                    calls = [ToolCall(_synthetic_call_id(), parsed.name, parsed.arguments)]
                else:
                    unparsed = looks_like_tool_call(visible)

            if not calls:
                self._transition(LoopState.ANSWERING, loops)
                if unparsed:
                    # Markup that failed to parse stays visible.
                    return visible
                return sanitize_answer(assembled.content, self.think_open, self.think_close)

            self._transition(LoopState.TOOL_EXECUTING, loops)
            assembled.tool_calls = calls
            history.append(assembled.to_message())
            for call in calls:
                result = await self._execute_tool(call)
                tool_calls_count += 1
                history.extend(self._result_messages(history, call, result, tool_calls_count))

            loops += 1
            if loops > self.max_tool_loops:
                self._transition(LoopState.FAILED, loops)
                raise LoopExceededError(self.max_tool_loops)

    async def _request_whole(self, request: CompletionRequest) -> AssembledAssistant:
        parts: list[str] = []
        assembler = ToolCallAssembler()
        calls: list[ToolCall] = []
        async with aclosing(self.provider.chat(request)) as chunks:
            async for chunk in chunks:
                if chunk.delta:
                    parts.append(chunk.delta)
                for delta in chunk.tool_deltas or []:
                    calls.extend(assembler.feed(delta))
        calls.extend(assembler.flush())

        metadata: dict[str, Any] = {}
        if assembler.errors:
            logger.warning("Tool call assembly failed: %s", assembler.errors)
            metadata["assembler_errors"] = list(assembler.errors)
        return AssembledAssistant(
            content="".join(parts), tool_calls=calls, model=request.model, metadata=metadata
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_turn(
        self, messages: list[Message], tool_calls_so_far: int = 0
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream one response as events.

        Yields thought/answer spans, then either a ``ToolCallEvent`` +
        ``ToolResultEvent`` pair for the first tool call that fired, or
        nothing more; always ends with a single ``DoneEvent``.  Fatal errors
        are raised.  The caller appends the tool exchange to its history and
        calls again.
        """
        history = self._prepare(messages)
        request = await self._new_request(stream=True)
        async for event in self._turn(history, request, tool_calls_so_far):
            yield event

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        """
        Stream a full run, re-entering after every tool call.

        Per-turn ``DoneEvent`` objects of tool turns are swallowed; the run
        ends with one ``DoneEvent`` or, on a fatal error, one ``ErrorEvent``.
        """
        history = self._prepare(messages)
        tool_calls_count = 0
        loops = 0
        try:
            request = await self._new_request(stream=True)
            while True:
                call_event: ToolCallEvent | None = None
                result_event: ToolResultEvent | None = None
                async with aclosing(self._turn(history, request, tool_calls_count)) as events:
                    async for event in events:
                        if isinstance(event, ToolCallEvent):
                            call_event = event
                        elif isinstance(event, ToolResultEvent):
                            result_event = event
                        elif isinstance(event, DoneEvent) and call_event is not None:
                            continue
                        yield event

                if call_event is None or result_event is None:
                    return

                call = ToolCall(call_event.id, call_event.name, call_event.arguments)
                history.append(
                    Message(role="assistant", content=call_event.assistant_content, tool_calls=[call])
                )
                tool_calls_count += 1
                history.append(
                    Message(role="tool", content=result_event.blob, tool_call_id=call.id, name=call.name)
                )
                history.append(
                    Message(
                        role="system",
                        content=build_tool_call_system_box(
                            history, call.name, call.arguments, tool_calls_count
                        ),
                    )
                )

                loops += 1
                if loops > self.max_tool_loops:
                    self._transition(LoopState.FAILED, loops)
                    raise LoopExceededError(self.max_tool_loops)
        except MooncowError as e:
            logger.error("Run failed: %s", e)
            yield ErrorEvent(message=e.message, code=e.code)

    async def _turn(
        self, history: list[Message], request: CompletionRequest, tool_calls_so_far: int
    ) -> AsyncIterator[StreamEvent]:
        self._transition(LoopState.REQUESTING, tool_calls_so_far)
        request.messages = self._request_messages(history)

        segmenter = ThinkSegmenter(self.think_open, self.think_close)
        assembler = ToolCallAssembler()
        markup = ToolMarkupBuffer() if self.tools_active else None
        parts: list[str] = []
        fired: ToolCall | None = None

        async with aclosing(self.provider.chat(request)) as chunks:
            async for chunk in chunks:
                if chunk.delta:
                    parts.append(chunk.delta)
                    visible, tagged = (
                        markup.feed(chunk.delta) if markup else (chunk.delta, None)
                    )
                    for event in segmenter.feed(visible):
                        yield event
                    if tagged is not None:
                        parsed = self.extractor.extract(tagged)
                        if parsed is not None:
                            fired = ToolCall(_synthetic_call_id(), parsed.name, parsed.arguments)
                        else:
                            for event in segmenter.feed(tagged):
                                yield event

                for delta in chunk.tool_deltas or []:
                    calls = assembler.feed(delta)
                    if calls and fired is None:
                        fired = calls[0]

                if fired is not None:
                    # One tool call per turn-stream; the rest of the body is
                    # not read.
                    break

        self._transition(LoopState.INSPECTING, tool_calls_so_far)
        if markup is not None and fired is None:
            for event in segmenter.feed(markup.release()):
                yield event
        for event in segmenter.finish():
            yield event

        content = "".join(parts)
        if fired is None and self.tools_active:
            leftovers = assembler.flush()
            if assembler.errors:
                logger.warning("Tool call assembly failed: %s", assembler.errors)
            if leftovers:
                fired = leftovers[0]
            elif not TOOL_TAG_RE.search(content):
                parsed = self.extractor.extract(
                    remove_think_blocks(content, self.think_open, self.think_close)
                )
                if parsed is not None:
                    fired = ToolCall(_synthetic_call_id(), parsed.name, parsed.arguments)

        if fired is None:
            self._transition(LoopState.ANSWERING, tool_calls_so_far)
            yield DoneEvent(
                metadata={"model": request.model, "tool_calls": tool_calls_so_far}
            )
            return

        self._transition(LoopState.TOOL_EXECUTING, tool_calls_so_far)
        yield ToolCallEvent(
            id=fired.id, name=fired.name, arguments=fired.arguments, assistant_content=content
        )
        result = await self._execute_tool(fired)
        count = tool_calls_so_far + 1
        blob = render_tool_message(
            fired.name,
            result,
            fired.arguments,
            count,
            self.budget.max_tool_chars,
            self.budget.max_blob_chars,
        )
        yield ToolResultEvent(
            id=fired.id,
            name=fired.name,
            result=result,
            blob=blob,
            assistant_content=content,
        )
        yield DoneEvent(
            metadata={"model": request.model, "tool_calls": count, "stopped_for_tool": True}
        )

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _prepare(self, messages: list[Message]) -> list[Message]:
        history = list(messages)
        if self.system_prompt and not any(m.role == "system" for m in history):
            history.insert(0, Message(role="system", content=self.system_prompt))
        return history

    async def _new_request(self, stream: bool) -> CompletionRequest:
        model = self.model
        if model == AUTO and self.model_resolver is not None:
            model = await self.model_resolver.resolve(AUTO)
        tools = self.registry.to_openai_schema() if self.tools_active else None
        return CompletionRequest(
            model=model, temperature=self.temperature, stream=stream, tools=tools
        )

    def _request_messages(self, history: list[Message]) -> list[Message]:
        stripped = strip_thinking_from_history(history)
        return self.budget.clamp(stripped)

    def _result_messages(
        self, history: list[Message], call: ToolCall, result: Any, count: int
    ) -> list[Message]:
        blob = render_tool_message(
            call.name,
            result,
            call.arguments,
            count,
            self.budget.max_tool_chars,
            self.budget.max_blob_chars,
        )
        tool_msg = Message(role="tool", content=blob, tool_call_id=call.id, name=call.name)
        box = build_tool_call_system_box(
            history + [tool_msg], call.name, call.arguments, count
        )
        return [tool_msg, Message(role="system", content=box)]

    async def _execute_tool(self, call: ToolCall) -> Any:
        """
        Execute one call and return its result.

        Never raises: unknown tools, invalid arguments, timeouts and
        exceptions all become ``{"error": ...}`` for the model to see.
        """
        try:
            tool = self.registry.resolve(call.name)
        except UnknownToolError as e:
            logger.warning("%s", e)
            return {"error": e.message}

        problem = validate_arguments(tool, call.arguments)
        if problem:
            err = ToolExecutionError(
                tool.name, f"invalid arguments: {problem}", ErrorCode.VALIDATION_ERROR
            )
            logger.warning("%s (%s)", err, err.code)
            return {"error": err.reason}

        logger.info(
            "Executing %s tool %s (id=%s)",
            "textual" if call.synthetic else "structured",
            tool.name,
            call.id,
        )
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                tool.execute(call.arguments), timeout=self.tool_timeout
            )
        except asyncio.TimeoutError:
            err = ToolExecutionError(
                tool.name, f"timed out after {self.tool_timeout}s", ErrorCode.TIMEOUT
            )
            logger.warning("%s (%s)", err, err.code)
            return {"error": err.reason}
        except Exception as e:
            logger.exception("Tool %s raised", tool.name)
            return {"error": str(e) or type(e).__name__}

        duration_ms = int((time.monotonic() - start) * 1000)
        if is_error_result(result):
            logger.info(
                "%s (%d ms)", ToolExecutionError(tool.name, result["error"]), duration_ms
            )
        else:
            logger.info(
                "Tool %s finished in %d ms (%d chars)",
                tool.name,
                duration_ms,
                len(str(result)),
            )
        return result

    @staticmethod
    def _transition(state: LoopState, loops: int) -> None:
        logger.debug("Loop state -> %s (round %d)", state.value, loops)
