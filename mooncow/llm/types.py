"""Core types for the LLM subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

# Tool-call ids synthesised from free text carry this prefix so later code
# can tell them apart from provider-issued ids.
TEXT_CALL_PREFIX = "text_"


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def to_wire(self) -> dict:
        m: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            m["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id:
            m["tool_call_id"] = self.tool_call_id
        if self.name:
            m["name"] = self.name
        return m


@dataclass
class ToolCall:
    """A resolved tool call with parsed arguments."""

    id: str
    name: str
    arguments: dict

    @property
    def synthetic(self) -> bool:
        """True when the call was parsed out of assistant text."""
        return self.id.startswith(TEXT_CALL_PREFIX)

    @property
    def arguments_json(self) -> str:
        return json.dumps(self.arguments, ensure_ascii=False)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }


@dataclass
class RawToolDelta:
    """
    An incremental delta for a streaming tool call.

    Providers emit these as tool-call fragments arrive.  The ToolCallAssembler
    accumulates them and produces finished ToolCall objects.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""
    done: bool = False


@dataclass
class StreamChunk:
    """
    A single chunk yielded while reading a chat completion.

    *delta* carries new text content.
    *tool_deltas* carries incremental tool-call fragments.
    *done* is ``True`` on the final chunk.
    """

    delta: str = ""
    tool_deltas: list[RawToolDelta] | None = None
    done: bool = False


@dataclass
class CompletionRequest:
    """
    The request shape sent to the completion endpoint.

    One instance lives for a whole orchestration run.  When the transport has
    to fall back to a different shape (tools stripped, alternate model) it
    updates the instance so later rounds keep the accepted shape.
    """

    model: str
    messages: list[Message] = field(default_factory=list)
    temperature: float = 0.7
    stream: bool = True
    tools: list[dict] | None = None
    tool_choice: str | None = None

    def to_body(self) -> dict:
        body: dict = {
            "model": self.model,
            "messages": [m.to_wire() for m in self.messages],
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.tools:
            body["tools"] = self.tools
            body["tool_choice"] = self.tool_choice or "auto"
        return body


@dataclass
class AssembledAssistant:
    """The complete assistant turn of a non-streamed completion."""

    content: str
    tool_calls: list[ToolCall]
    model: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_message(self) -> Message:
        return Message(
            role="assistant",
            content=self.content,
            tool_calls=list(self.tool_calls) or None,
        )
