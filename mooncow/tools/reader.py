"""
Page reading through Jina Reader (``https://r.jina.ai/<url>``).

``type: "read"`` fetches the cleaned text of up to three URLs, one after the
other; ``type: "search"`` runs queries through ``https://s.jina.ai/`` and
needs an API key.  ``jina_page_summaries`` reads up to eight links and
returns an extractive summary of each.
"""

from __future__ import annotations

import re
from collections import Counter
from urllib.parse import quote

import httpx

from mooncow.tools.base import Tool
from mooncow.tools.http import HttpFetcher

READER_URL = "https://r.jina.ai/"
SEARCH_URL = "https://s.jina.ai/"
MAX_URLS = 3


def _headers(api_key: str) -> dict:
    headers = {"Accept": "text/plain"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


class JinaReaderTool(Tool):
    def __init__(self, fetcher: HttpFetcher, api_key: str = "") -> None:
        self.fetcher = fetcher
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "jina"

    @property
    def description(self) -> str:
        return (
            'Read web pages as clean text. Use { "type": "read", "queries": [url, ...] } '
            "on 2-3 promising links after a search."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["read", "search"]},
                "queries": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 1,
                    "description": "URLs to read, or search queries for type=search.",
                },
            },
            "required": ["queries"],
        }

    async def execute(self, args: dict) -> dict:
        mode = args.get("type") or "read"
        queries = [str(q).strip() for q in args.get("queries") or [] if str(q).strip()]
        if not queries:
            return {"error": "queries must contain at least one URL or query"}
        if mode == "search":
            return await self._search(queries)
        return await self._read(queries)

    async def _read(self, urls: list[str]) -> dict:
        summaries = []
        for url in urls[:MAX_URLS]:
            if not url.startswith(("http://", "https://")):
                summaries.append({"url": url, "status": "error", "error": "not a URL"})
                continue
            res = await self.fetcher.get_text(READER_URL + url, headers=_headers(self.api_key))
            if res.ok and (res.data or "").strip():
                summaries.append({"url": url, "status": "ok", "full_text": res.data})
            else:
                summaries.append({"url": url, "status": "error", "error": res.error or "empty page"})
        return {"mode": "read", "summaries": summaries}

    async def _search(self, queries: list[str]) -> dict:
        if not self.api_key:
            return {"error": "jina search requires an API key"}
        results = []
        for query in queries[:MAX_URLS]:
            res = await self.fetcher.get_text(SEARCH_URL + quote(query), headers=_headers(self.api_key))
            results.append({"query": query, "text": res.data if res.ok else f"error: {res.error}"})
        return {"mode": "search", "results": results}


# ----------------------------------------------------------------------
# Page summaries
# ----------------------------------------------------------------------

MAX_LINKS = 8
SUMMARY_MAX_SENTENCES = 6
SUMMARY_MAX_CHARS = 1200
EXCERPT_CHARS = 280
TRACKING_PARAMS = (
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "gclid", "fbclid",
)
STOPWORDS = frozenset(
    "the and a an of to in for on at by from as that this these those is are was were "
    "be been being with it its or if but about into through over after before between "
    "down up out off than then so such can could should would may might will just also "
    "not no yes you your we our they their he she his her them us".split()
)

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]*`")
_HEADING_RE = re.compile(r"^#+\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"\*\*([^*]+)\*\*|\*([^*]+)\*")
_MD_LINK_RE = re.compile(r"\[[^\]]*\]\(([^)]+)\)")
_TITLE_RE = re.compile(r"^\s*##?\s+(.+?)\s*$", re.MULTILINE)
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"(\[])")
_WORD_RE = re.compile(r"[a-z0-9]+")


def canonical_link(raw: str) -> str:
    """Add a scheme when missing and drop common tracking parameters."""
    url = raw.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url
    for key in TRACKING_PARAMS:
        parsed = parsed.copy_remove_param(key)
    return str(parsed)


def plain_text(markdown: str) -> str:
    t = _CODE_BLOCK_RE.sub("", markdown)
    t = _INLINE_CODE_RE.sub("", t)
    t = _HEADING_RE.sub("", t)
    t = _EMPHASIS_RE.sub(lambda m: m.group(1) or m.group(2), t)
    t = _MD_LINK_RE.sub(r"\1", t)
    return " ".join(t.split())


def page_title(markdown: str) -> str:
    m = _TITLE_RE.search(markdown)
    return m.group(1).strip() if m else ""


def summarize_page(markdown: str) -> str:
    """
    Extractive summary: the highest scoring sentences in page order.

    A sentence scores the summed page-wide frequency of its non-stopwords.
    Pages without sentences of a reasonable length fall back to their head.
    """
    text = plain_text(markdown)
    if not text:
        return ""
    sentences = [s for s in _SENTENCE_END_RE.split(text) if 40 <= len(s) <= 400]
    if not sentences:
        return text[:SUMMARY_MAX_CHARS]

    def words(s: str) -> list[str]:
        return [w for w in _WORD_RE.findall(s.lower()) if w not in STOPWORDS]

    freq = Counter(w for s in sentences for w in words(s))
    ranked = sorted(
        range(len(sentences)),
        key=lambda i: sum(freq[w] for w in words(sentences[i])),
        reverse=True,
    )
    out = " ".join(sentences[i] for i in sorted(ranked[:SUMMARY_MAX_SENTENCES]))
    if len(out) > SUMMARY_MAX_CHARS:
        out = out[:SUMMARY_MAX_CHARS] + "..."
    return out


class JinaPageSummariesTool(Tool):
    def __init__(self, fetcher: HttpFetcher, api_key: str = "") -> None:
        self.fetcher = fetcher
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "jina_page_summaries"

    @property
    def description(self) -> str:
        return (
            "Fetch pages through Jina Reader and return a short summary of each. "
            "Use after a search to expand on specific links."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "links": {
                    "type": "array",
                    "items": {"type": "string", "minLength": 5},
                    "minItems": 1,
                    "maxItems": MAX_LINKS,
                    "description": "HTTP(S) links to summarize.",
                },
            },
            "required": ["links"],
        }

    async def execute(self, args: dict) -> dict:
        summaries = []
        seen: set[str] = set()
        for raw in args.get("links") or []:
            if not isinstance(raw, str) or not raw.strip():
                continue
            if len(summaries) >= MAX_LINKS:
                break
            url = canonical_link(raw)
            if url in seen:
                continue
            seen.add(url)

            res = await self.fetcher.get_text(READER_URL + url, headers=_headers(self.api_key))
            if not res.ok or not (res.data or "").strip():
                summaries.append({"url": url, "status": "error", "error": res.error or "empty page"})
                continue
            page = res.data
            summaries.append(
                {
                    "url": url,
                    "status": "ok",
                    "title": page_title(page) or None,
                    "summary": summarize_page(page),
                    "excerpt": plain_text(page)[:EXCERPT_CHARS],
                    "bytes": len(page),
                }
            )
        if not summaries:
            return {"error": "links must contain at least one URL"}
        return {"summaries": summaries, "meta": {"tool": self.name, "count": len(summaries)}}
