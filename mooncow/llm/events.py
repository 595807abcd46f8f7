"""
Semantic events produced while a completion is read.

A turn-stream yields ``ThoughtEvent`` / ``AnswerEvent`` text spans, at most one
``ToolCallEvent`` + ``ToolResultEvent`` pair, and ends with exactly one
``DoneEvent`` (or a raised error).  ``ErrorEvent`` is only produced by the
re-entering driver, which turns a fatal error into a message for the UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


@dataclass
class ThoughtEvent:
    type: ClassVar[str] = "thought"
    text: str


@dataclass
class AnswerEvent:
    type: ClassVar[str] = "answer"
    text: str


@dataclass
class ToolCallEvent:
    type: ClassVar[str] = "tool_call"
    id: str
    name: str
    arguments: dict
    assistant_content: str = ""


@dataclass
class ToolResultEvent:
    type: ClassVar[str] = "tool_result"
    id: str
    name: str
    result: Any
    blob: str
    assistant_content: str = ""


@dataclass
class ErrorEvent:
    type: ClassVar[str] = "error"
    message: str
    code: str = ""


@dataclass
class DoneEvent:
    type: ClassVar[str] = "done"
    metadata: dict = field(default_factory=dict)


StreamEvent = Union[
    ThoughtEvent, AnswerEvent, ToolCallEvent, ToolResultEvent, ErrorEvent, DoneEvent
]
