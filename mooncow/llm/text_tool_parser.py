"""
Free-text tool-call parsing.

Some models ignore the structured ``tool_calls`` channel and write the call
into their content instead.  The accepted shapes, tried in this order:

1.  A tag-wrapped JSON object::

        <tool>{"name": "multi_source_search", "arguments": {"queries": ["x"]}}</tool>

    ``<tool_call>`` works as well, and the arguments may also be inlined as
    top-level fields next to ``name``.
2.  The same JSON object without tags (optionally inside a code fence).
3.  A bare object carrying a ``queries`` list, which is read as a call to the
    default search tool.
4.  A labelled form::

        name: "jina"
        arguments: {"type": "read", "queries": ["https://example.com"]}

Each grammar is a pure function returning ``ParsedToolCall | None``.  The
labelled grammar raises ``ParseAmbiguityError`` when it recognised the labels
but could not decode the arguments; the extractor logs that and gives up, so
the caller can show the content as a plain answer.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Callable

from mooncow.types import ParseAmbiguityError

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_TOOL = "multi_source_search"

TOOL_TAG_RE = re.compile(r"<(tool|tool_call)>([\s\S]*?)</\1>", re.IGNORECASE)
_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\n([\s\S]*?)```")
_NAME_LABEL_RE = re.compile(r"\bname[ \t]*:[ \t]*\"?([A-Za-z0-9_\-\. \t]+)\"?", re.IGNORECASE)
_NAMED_CALL_HINT_RE = re.compile(
    r"\bname\s*:\s*\"?(multi_source_search|jina)\"?", re.IGNORECASE
)
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})


@dataclass
class ParsedToolCall:
    name: str
    arguments: dict


def normalize_tool_name(raw: object) -> str:
    """Map fuzzy model spellings onto canonical tool names."""
    n = str(raw or "").strip().lower()
    if not n:
        return ""
    if "multi" in n and "search" in n:
        return "multi_source_search"
    if "jina" in n and "summar" in n:
        return "jina_page_summaries"
    if "jina" in n:
        return "jina"
    return n


def looks_like_tool_call(text: str) -> bool:
    """Cheap detection of a textual tool-call pattern (high confidence)."""
    if not text:
        return False
    return bool(TOOL_TAG_RE.search(text) or _NAMED_CALL_HINT_RE.search(text))


# ----------------------------------------------------------------------
# Pre-processing
# ----------------------------------------------------------------------

def _unwrap(text: str) -> str:
    """Prefer a fenced block, then the inside of a tool tag."""
    fence = _FENCE_RE.search(text)
    body = fence.group(1) if fence else text
    tag = TOOL_TAG_RE.search(body)
    if tag:
        body = tag.group(2)
    return body.strip()


def _normalize_quotes(text: str) -> str:
    return text.translate(_SMART_QUOTES).replace("\r", "")


def _load_object(text: str) -> dict | None:
    try:
        obj = json.loads(text)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def _from_object(obj: dict, default_search_tool: str) -> ParsedToolCall | None:
    if obj.get("name"):
        name = normalize_tool_name(obj["name"])
        if isinstance(obj.get("arguments"), dict):
            args = obj["arguments"]
        else:
            args = {k: v for k, v in obj.items() if k not in ("name", "arguments")}
        return ParsedToolCall(name=name, arguments=args)
    if isinstance(obj.get("queries"), list):
        return ParsedToolCall(name=default_search_tool, arguments=obj)
    return None


def _balanced_object(text: str, start: int) -> str | None:
    """Return the brace-balanced object beginning at ``text[start]``."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


# ----------------------------------------------------------------------
# Grammars
# ----------------------------------------------------------------------

def parse_tagged_json(text: str, default_search_tool: str) -> ParsedToolCall | None:
    """``<tool>{...}</tool>`` or ``<tool_call>{...}</tool_call>``."""
    match = TOOL_TAG_RE.search(text)
    if not match:
        return None
    obj = _load_object(_normalize_quotes(match.group(2).strip()))
    if obj is None:
        return None
    return _from_object(obj, default_search_tool)


def parse_json_object(text: str, default_search_tool: str) -> ParsedToolCall | None:
    """A whole (possibly fenced) JSON object with a ``name`` field."""
    obj = _load_object(_normalize_quotes(_unwrap(text)))
    if obj is None or not obj.get("name"):
        return None
    return _from_object(obj, default_search_tool)


def parse_bare_queries(text: str, default_search_tool: str) -> ParsedToolCall | None:
    """A nameless JSON object with a ``queries`` list."""
    body = _normalize_quotes(_unwrap(text))
    obj = _load_object(body)
    if obj is None:
        # A labelled call embeds its own object; leave it to parse_labeled.
        if _NAME_LABEL_RE.search(body):
            return None
        # Only an object that opens the body counts; prose mentioning JSON
        # further down is not a call.
        if not body.startswith("{"):
            return None
        candidate = _balanced_object(body, 0)
        obj = _load_object(candidate) if candidate else None
    if obj is None or obj.get("name") or not isinstance(obj.get("queries"), list):
        return None
    return ParsedToolCall(name=default_search_tool, arguments=obj)


def parse_labeled(text: str, default_search_tool: str) -> ParsedToolCall | None:
    """``name: ...`` followed by ``arguments: {...}``."""
    body = _normalize_quotes(_unwrap(text))
    name_match = _NAME_LABEL_RE.search(body)
    if not name_match:
        return None
    label = body.lower().find("arguments")
    if label == -1:
        return None
    start = body.find("{", label)
    if start == -1:
        raise ParseAmbiguityError("arguments label without a JSON object")
    candidate = _balanced_object(body, start)
    if candidate is None:
        raise ParseAmbiguityError(
            f"unbalanced arguments object: {body[start:start + 200]}"
        )
    args = _load_object(candidate)
    if args is None:
        raise ParseAmbiguityError(f"arguments are not a JSON object: {candidate[:200]}")
    return ParsedToolCall(
        name=normalize_tool_name(name_match.group(1)), arguments=args
    )


Grammar = Callable[[str, str], "ParsedToolCall | None"]

GRAMMARS: tuple[Grammar, ...] = (
    parse_tagged_json,
    parse_json_object,
    parse_bare_queries,
    parse_labeled,
)


class TextToolCallExtractor:
    """Runs the grammar chain and returns the first confident match."""

    def __init__(
        self,
        default_search_tool: str = DEFAULT_SEARCH_TOOL,
        grammars: tuple[Grammar, ...] = GRAMMARS,
    ) -> None:
        self.default_search_tool = default_search_tool
        self.grammars = grammars

    def extract(self, text: str) -> ParsedToolCall | None:
        if not text or not text.strip():
            return None
        for grammar in self.grammars:
            try:
                parsed = grammar(text, self.default_search_tool)
            except ParseAmbiguityError as exc:
                logger.warning(
                    "Textual tool call detected but not parsable (%s). Preview: %s",
                    exc,
                    text[:300],
                )
                return None
            if parsed is not None and parsed.name:
                return parsed
        if looks_like_tool_call(text):
            logger.warning(
                "Textual tool-call pattern found but no grammar matched. Content length: %d",
                len(text),
            )
        return None


# ----------------------------------------------------------------------
# Content sanitising
# ----------------------------------------------------------------------

def sanitize_answer(text: str, open_tag: str = "<think>", close_tag: str = "</think>") -> str:
    """Remove reasoning and tool markup from a final answer."""
    if not text:
        return ""
    t = remove_think_blocks(text, open_tag, close_tag)
    t = TOOL_TAG_RE.sub("", t)
    return t.strip()


def remove_think_blocks(text: str, open_tag: str = "<think>", close_tag: str = "</think>") -> str:
    """Drop ``<think>…</think>`` blocks and stray think tags."""
    if not text:
        return ""
    o, c = re.escape(open_tag), re.escape(close_tag)
    t = re.sub(rf"{o}[\s\S]*?{c}", "", text, flags=re.IGNORECASE)
    t = re.sub(rf"{o}|{c}", "", t, flags=re.IGNORECASE)
    return t.strip()
