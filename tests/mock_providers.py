"""
Mock completion providers for testing.

Provide canned responses so tests can exercise the orchestrator, the
segmenter and the assembler without hitting real APIs.
"""

from __future__ import annotations

import json
from typing import AsyncIterator

from mooncow.llm.providers.base import Provider
from mooncow.llm.types import CompletionRequest, RawToolDelta, StreamChunk


class MockProvider(Provider):
    """
    A provider that yields pre-configured ``StreamChunk`` objects.

    Usage::

        provider = MockProvider(responses=[
            [StreamChunk(delta="Hello "), StreamChunk(delta="world!", done=True)],
        ])

    Parameters
    ----------
    responses:
        One chunk list per call.  The last list is repeated once the
        script runs out, so a single response answers every call.
    model_name:
        Identifier returned by ``name``.
    """

    def __init__(
        self,
        responses: list[list[StreamChunk]] | None = None,
        model_name: str = "mock-model",
    ) -> None:
        self._responses = responses or [[StreamChunk(done=True)]]
        self._model_name = model_name
        self.call_count = 0
        self.chunks_yielded = 0
        self.requests: list[dict] = []

    @property
    def name(self) -> str:
        return self._model_name

    @property
    def last_request(self) -> dict:
        return self.requests[-1]

    async def chat(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        # Snapshot the body; the orchestrator reuses the request object.
        self.requests.append(request.to_body())
        chunks = self._responses[min(self.call_count, len(self._responses) - 1)]
        self.call_count += 1
        for chunk in chunks:
            self.chunks_yielded += 1
            yield chunk


def text_response(text: str, pieces: int = 1) -> list[StreamChunk]:
    """Split *text* into *pieces* roughly equal deltas."""
    if pieces <= 1 or len(text) < pieces:
        return [StreamChunk(delta=text), StreamChunk(done=True)]
    size = -(-len(text) // pieces)
    chunks = [StreamChunk(delta=text[i : i + size]) for i in range(0, len(text), size)]
    chunks.append(StreamChunk(done=True))
    return chunks


def make_text_provider(text: str, model_name: str = "mock-text") -> MockProvider:
    """
    Convenience: create a ``MockProvider`` that streams a simple text response
    one word at a time.
    """
    words = text.split(" ")
    chunks: list[StreamChunk] = []
    for i, word in enumerate(words):
        suffix = " " if i < len(words) - 1 else ""
        chunks.append(StreamChunk(delta=word + suffix))
    chunks.append(StreamChunk(done=True))
    return MockProvider(responses=[chunks], model_name=model_name)


def tool_call_response(
    tool_name: str,
    tool_args: dict,
    call_id: str = "call_abc123",
    content_prefix: str = "",
    index: int = 0,
) -> list[StreamChunk]:
    """
    A streamed structured tool call.

    The name arrives in two parts and the arguments in thirds so the
    assembler has to accumulate them.
    """
    args_json = json.dumps(tool_args)
    chunks: list[StreamChunk] = []
    if content_prefix:
        chunks.append(StreamChunk(delta=content_prefix))

    half = len(tool_name) // 2
    chunks.append(
        StreamChunk(tool_deltas=[RawToolDelta(call_index=index, id=call_id, name_delta=tool_name[:half])])
    )
    chunks.append(
        StreamChunk(tool_deltas=[RawToolDelta(call_index=index, name_delta=tool_name[half:])])
    )

    third = max(1, len(args_json) // 3)
    for part in (args_json[:third], args_json[third : 2 * third], args_json[2 * third :]):
        if part:
            chunks.append(StreamChunk(tool_deltas=[RawToolDelta(call_index=index, args_delta=part)]))

    chunks.append(
        StreamChunk(tool_deltas=[RawToolDelta(call_index=index, done=True)], done=True)
    )
    return chunks


def make_tool_call_provider(
    tool_name: str,
    tool_args: dict,
    final_text: str = "done",
    call_id: str = "call_abc123",
) -> MockProvider:
    """One structured tool call, then a plain answer."""
    return MockProvider(
        responses=[
            tool_call_response(tool_name, tool_args, call_id),
            text_response(final_text),
        ],
        model_name="mock-tool",
    )


def whole_response(content: str = "", tool_calls: list[tuple[str, dict, str]] | None = None) -> list[StreamChunk]:
    """The single chunk a non-streamed body turns into."""
    deltas = None
    if tool_calls:
        deltas = [
            RawToolDelta(call_index=i, id=call_id, name_delta=name, args_delta=json.dumps(args), done=True)
            for i, (name, args, call_id) in enumerate(tool_calls)
        ]
    return [StreamChunk(delta=content, tool_deltas=deltas, done=True)]


def make_malformed_tool_call_provider(model_name: str = "mock-malformed") -> MockProvider:
    """
    A provider that emits a tool call with invalid JSON arguments.

    The assembler should record an error and emit no ``ToolCall``.
    """
    chunks: list[StreamChunk] = [
        StreamChunk(delta="I will try a tool."),
        StreamChunk(tool_deltas=[RawToolDelta(call_index=0, id="call_bad", name_delta="echo")]),
        StreamChunk(tool_deltas=[RawToolDelta(call_index=0, args_delta='{"key": INVALID_JSON')]),
        StreamChunk(tool_deltas=[RawToolDelta(call_index=0, done=True)], done=True),
    ]
    return MockProvider(responses=[chunks], model_name=model_name)
