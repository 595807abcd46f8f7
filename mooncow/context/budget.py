"""
Character-budgeted conversation clamping.

:meth:`ContextBudget.clamp` enforces three ceilings before every request:

1.  Non-system messages are cut to ``max_message_chars``.
2.  Tool messages have embedded JSON minified, then are cut to
    ``max_tool_chars``.  The instructional footer appended by the result
    summarizer is found by its sentinel and kept verbatim; only the head is
    shortened.
3.  While the total still exceeds ``max_total_chars``, the earliest
    *unprotected* message is dropped.  Protected are the first message when
    it is a system message, the most recent user message and the last two
    messages.  When only protected messages remain the list is returned over
    budget.

Cuts append :data:`TRUNCATION_MARKER` where it fits and the result never exceeds the
ceiling it was cut to.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from mooncow.llm.types import Message
from mooncow.llm.text_tool_parser import remove_think_blocks
from mooncow.prompts.footer import FOOTER_SENTINEL
from mooncow.types import ContextBudgetReport

logger = logging.getLogger(__name__)

# Roughly four characters per token; keeps ~8k-token models comfortable.
MAX_CONTEXT_CHARS = 25_000
MAX_MSG_CHARS = 4_000
MAX_TOOL_CHARS = 10_000
MAX_BLOB_CHARS = 12_500

TRUNCATION_MARKER = "... [truncated]"


def truncate(text: str, limit: int) -> str:
    """Cut *text* so that it plus the marker fits in *limit* characters."""
    if len(text) <= limit:
        return text
    if limit <= len(TRUNCATION_MARKER):
        return text[: max(0, limit)]
    return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def minify_json(text: str) -> str:
    """Re-serialise *text* compactly when it is a JSON document."""
    try:
        obj = json.loads(text)
    except ValueError:
        return text
    if not isinstance(obj, (dict, list)):
        return text
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def clamp_tool_content(content: str, limit: int = MAX_TOOL_CHARS) -> str:
    """
    Clamp a tool message while keeping the trailing footer intact.

    The footer starts at the last occurrence of the footer sentinel.  Without
    a sentinel this is a plain :func:`truncate`.
    """
    if len(content) <= limit:
        return content
    idx = content.rfind(FOOTER_SENTINEL)
    if idx == -1:
        return truncate(content, limit)

    footer = content[idx:]
    head = content[:idx].rstrip("\n")
    sep = "\n" if head else ""
    available = limit - len(footer) - len(sep)
    if available <= 0:
        # The footer alone fills the budget; it still wins over the head.
        return footer
    return truncate(head, available) + sep + footer


def strip_thinking_from_history(messages: list[Message]) -> list[Message]:
    """
    Remove think blocks from every assistant message but the most recent.

    The latest assistant turn keeps its reasoning so a follow-up after a tool
    call can continue from it.
    """
    last_assistant = -1
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == "assistant":
            last_assistant = i
            break
    out: list[Message] = []
    for i, msg in enumerate(messages):
        if msg.role == "assistant" and i != last_assistant and msg.content:
            msg = replace(msg, content=remove_think_blocks(msg.content))
        out.append(msg)
    return out


class ContextBudget:
    """
    Clamp conversations to a character budget.

    Parameters
    ----------
    max_total_chars:
        Ceiling for the sum of all message contents.
    max_message_chars:
        Ceiling for each user/assistant message.  System messages are never
        cut individually.
    max_tool_chars:
        Ceiling for each tool message.
    max_blob_chars:
        Slice of a fully read page handed to the summarizer.
    """

    def __init__(
        self,
        max_total_chars: int = MAX_CONTEXT_CHARS,
        max_message_chars: int = MAX_MSG_CHARS,
        max_tool_chars: int = MAX_TOOL_CHARS,
        max_blob_chars: int = MAX_BLOB_CHARS,
    ) -> None:
        self.max_total_chars = max_total_chars
        self.max_message_chars = max_message_chars
        self.max_tool_chars = max_tool_chars
        self.max_blob_chars = max_blob_chars

    # ------------------------------------------------------------------
    # Per-message
    # ------------------------------------------------------------------

    def clamp_message(self, msg: Message) -> Message:
        content = msg.content or ""
        if msg.role == "tool":
            clamped = clamp_tool_content(minify_json(content), self.max_tool_chars)
        elif msg.role != "system":
            clamped = truncate(content, self.max_message_chars)
        else:
            return msg
        if clamped == content:
            return msg
        return replace(msg, content=clamped)

    # ------------------------------------------------------------------
    # Whole conversation
    # ------------------------------------------------------------------

    @staticmethod
    def total_chars(messages: list[Message]) -> int:
        return sum(len(m.content or "") for m in messages)

    @staticmethod
    def protected_indices(messages: list[Message]) -> set[int]:
        protected: set[int] = set()
        n = len(messages)
        if n and messages[0].role == "system":
            protected.add(0)
        protected.update(i for i in (n - 1, n - 2) if i >= 0)
        for i in range(n - 1, -1, -1):
            if messages[i].role == "user" and (messages[i].content or "").strip():
                protected.add(i)
                break
        return protected

    def clamp(self, messages: list[Message]) -> list[Message]:
        """Return a clamped copy of *messages*; the input is not modified."""
        return self._clamp(messages)[0]

    def report(self, messages: list[Message]) -> ContextBudgetReport:
        """Clamp *messages* and describe what happened."""
        return self._clamp(messages)[1]

    def _clamp(self, messages: list[Message]) -> tuple[list[Message], ContextBudgetReport]:
        arr = [self.clamp_message(m) for m in messages]
        truncated = sum(1 for a, b in zip(arr, messages) if a is not b)
        if truncated:
            logger.debug("Truncated %d message(s) to per-message limits", truncated)

        total = self.total_chars(arr)
        dropped = 0
        while total > self.max_total_chars and len(arr) > 1:
            protected = self.protected_indices(arr)
            drop = next((i for i in range(len(arr)) if i not in protected), None)
            if drop is None:
                logger.warning(
                    "Context still over budget (%d > %d) with only protected messages left",
                    total,
                    self.max_total_chars,
                )
                break
            evicted = arr.pop(drop)
            total -= len(evicted.content or "")
            dropped += 1
            logger.debug("Evicted %s message at index %d", evicted.role, drop)

        report = ContextBudgetReport(
            max_total_chars=self.max_total_chars,
            max_message_chars=self.max_message_chars,
            max_tool_chars=self.max_tool_chars,
            total_chars=total,
            kept_messages=len(arr),
            dropped_messages=dropped,
            truncated_messages=truncated,
            over_budget=total > self.max_total_chars,
        )
        return arr, report
