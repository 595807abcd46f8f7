"""LLM subsystem -- providers, stream segmentation and tool-call assembly."""

from mooncow.llm.types import (
    AssembledAssistant,
    CompletionRequest,
    Message,
    RawToolDelta,
    StreamChunk,
    ToolCall,
)
from mooncow.llm.segmenter import ThinkSegmenter
from mooncow.llm.text_tool_parser import TextToolCallExtractor
from mooncow.llm.tool_call_assembler import ToolCallAssembler

__all__ = [
    "AssembledAssistant",
    "CompletionRequest",
    "Message",
    "RawToolDelta",
    "StreamChunk",
    "TextToolCallExtractor",
    "ThinkSegmenter",
    "ToolCall",
    "ToolCallAssembler",
]
