"""
Compaction of raw tool results for re-injection into the conversation.

Provider payloads are large and heterogeneous.  :func:`summarize` turns them
into line-oriented, source-labelled text (one fact or link per line).
:func:`render_tool_message` then appends the instructional footer, reserving
room for it first so only the summary body is ever cut.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from mooncow.context.budget import (
    MAX_BLOB_CHARS,
    MAX_TOOL_CHARS,
    TRUNCATION_MARKER,
    truncate,
)
from mooncow.prompts.footer import build_tool_footer
from mooncow.tools.base import is_error_result

logger = logging.getLogger(__name__)

# Window taken from a fully read page.
READ_WINDOW_CHARS = MAX_BLOB_CHARS

_WS = re.compile(r"\s+")

NEWS_BUCKETS = (
    "google_news", "bing_news", "reuters", "guardian", "ap", "bbc",
    "aljazeera", "politico", "thehill", "gdelt",
)


def _clip(text: Any, limit: int) -> str:
    """Collapse whitespace and clip to *limit* characters."""
    if not text:
        return ""
    t = _WS.sub(" ", str(text)).strip()
    return t if len(t) <= limit else t[:limit] + " … [truncated]"


def _link_lines(lines: list[str], items: list[dict], limit: int) -> None:
    for it in items[:limit]:
        title = _clip(it.get("title") or it.get("story_title"), 300)
        link = it.get("link") or it.get("url") or it.get("story_url") or ""
        if title:
            lines.append(f"- {title}")
        if link:
            lines.append(f"  {link}")


# ----------------------------------------------------------------------
# multi_source_search
# ----------------------------------------------------------------------

def _summarize_search(result: dict, args: dict | None, window: int) -> str:
    lines: list[str] = []
    queries = (args or {}).get("queries")
    if isinstance(queries, list) and queries:
        lines.append("search: " + " | ".join(str(q) for q in queries))

    for r in result.get("results") or []:
        if r.get("query"):
            lines.append(f"query: {r['query']}")
        src = r.get("sources") or {}
        core = src.get("core_always") or {}

        wiki = core.get("wikipedia") or {}
        if wiki.get("extract"):
            title = f"{wiki['title']} — " if wiki.get("title") else ""
            lines.append(f"wikipedia: {title}{_clip(wiki['extract'], 700)}")
        if wiki.get("url"):
            lines.append(f"link: {wiki['url']}")
        for rel in (core.get("wikipedia_related") or [])[:2]:
            lines.append(f"wikipedia_related: {rel.get('title', '')} — {_clip(rel.get('extract'), 500)}")
        quick = core.get("news_quick") or []
        if quick:
            lines.append("news:quick")
            _link_lines(lines, quick, len(quick))
        wikidata = [x.get("label") for x in (core.get("wikidata") or [])[:5] if x.get("label")]
        if wikidata:
            lines.append("wikidata: " + " | ".join(wikidata))

        ddg = src.get("duckduckgo") or {}
        heading = f"{ddg['heading']} — " if ddg.get("heading") else ""
        if heading or ddg.get("abstract"):
            lines.append(f"duckduckgo: {_clip(heading + (ddg.get('abstract') or ''), 500)}")
        if ddg.get("url"):
            lines.append(f"link: {ddg['url']}")

        web = src.get("google_web") or {}
        if web.get("items"):
            lines.append("google_web:")
            _link_lines(lines, web["items"], 8)
        elif web.get("error"):
            status = f" {web['status']}" if web.get("status") else ""
            lines.append(f"google_web: error{status}")

        sx = src.get("searxng") or {}
        if sx.get("results"):
            lines.append(f"searxng: {sx.get('instance', '')}".strip())
            _link_lines(lines, sx["results"], 8)

        news = src.get("news_current_events") or {}
        if news.get("top_merged"):
            lines.append("news:top_merged")
            _link_lines(lines, news["top_merged"], 10)
        for bucket in NEWS_BUCKETS:
            items = news.get(bucket) or []
            if items:
                lines.append(f"news:{bucket}")
                _link_lines(lines, items, 3)

        errors = src.get("errors") or []
        if errors:
            lines.append("unavailable: " + ", ".join(str(e) for e in errors))
    return "\n".join(lines)


# ----------------------------------------------------------------------
# jina
# ----------------------------------------------------------------------

def _summarize_page_summaries(result: dict, args: dict | None, window: int) -> str:
    lines = ["jina_page_summaries:"]
    for it in (result.get("summaries") or [])[:6]:
        title = (it.get("title") or "").strip()
        summary = _clip(it.get("summary") or it.get("excerpt"), 1200)
        if title:
            lines.append(f"- {title}")
        if summary:
            lines.append(f"  {summary}")
        if it.get("url"):
            lines.append(f"  {it['url']}")
    return "\n".join(lines)


def _summarize_jina(result: dict, args: dict | None, window: int) -> str:
    mode = result.get("mode")
    if mode == "read":
        pages = result.get("summaries") or []
        ok = next(
            (p for p in pages if str(p.get("status", "")).lower() == "ok" and p.get("full_text")),
            None,
        )
        if ok is not None:
            text = ok["full_text"]
            # Centre the window; intros and footers are mostly boilerplate.
            start = max(0, (len(text) - window) // 2)
            body = text[start : start + window]
            return f"{ok['url']}\n\n{body}" if ok.get("url") else body
        lines = ["jina:read"]
        for p in pages[:5]:
            lines.append(f"- error: {p.get('error') or p.get('status') or 'error'}")
            if p.get("url"):
                lines.append(f"  {p['url']}")
        return "\n".join(lines)
    if mode == "search":
        lines = ["jina:search"]
        for r in (result.get("results") or [])[:5]:
            if (r.get("query") or "").strip():
                lines.append(f"query: {r['query'].strip()}")
            data = r.get("data") or r.get("text") or ""
            preview = _clip(data if isinstance(data, str) else json.dumps(data), 800)
            if preview:
                lines.append(preview)
        return "\n".join(lines)
    return _clip(json.dumps(result, ensure_ascii=False), 3000)


Formatter = Callable[[dict, "dict | None", int], str]

FORMATTERS: dict[str, Formatter] = {
    "multi_source_search": _summarize_search,
    "jina": _summarize_jina,
    "jina_page_summaries": _summarize_page_summaries,
}


def summarize(
    tool_name: str,
    result: Any,
    args: dict | None = None,
    read_window: int = READ_WINDOW_CHARS,
) -> str:
    """
    Compact *result* of *tool_name* into source-labelled lines.

    *read_window* bounds the slice taken from a fully read page.
    """
    if result is None:
        return ""
    if is_error_result(result):
        return f"tool {tool_name} error: {result['error']}"
    formatter = FORMATTERS.get(tool_name)
    try:
        if formatter is not None and isinstance(result, dict):
            return formatter(result, args, read_window)
        return json.dumps(result, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError, AttributeError, KeyError) as exc:
        logger.warning("Could not format %s result: %s", tool_name, exc)
        return f"tool {tool_name} result format error: {exc}"


def append_footer(body: str, footer: str, limit: int = MAX_TOOL_CHARS) -> str:
    """
    Join *body* and *footer* within *limit* characters.

    Space for the footer is reserved first; only the body is truncated, so
    the returned text always ends with the complete footer.
    """
    if not footer:
        return truncate(body, limit)
    sep = "\n\n" if body else ""
    available = limit - len(footer) - len(sep)
    if len(body) <= available:
        return body + sep + footer
    if available <= len(TRUNCATION_MARKER):
        return footer
    return truncate(body, available) + sep + footer


def render_tool_message(
    tool_name: str,
    result: Any,
    args: dict | None,
    tool_calls_count: int,
    limit: int = MAX_TOOL_CHARS,
    read_window: int = READ_WINDOW_CHARS,
) -> str:
    """Summary plus footer, ready to become a ``tool`` message."""
    body = summarize(tool_name, result, args, read_window)
    return append_footer(body, build_tool_footer(tool_calls_count), limit)
