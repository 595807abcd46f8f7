"""
Keyless multi-source search.

For every query the tool asks the Wikipedia REST summary endpoint and the
DuckDuckGo instant-answer API in parallel.  A source that fails or times out
is listed under ``sources.errors`` for that query; the others still count.
"""

from __future__ import annotations

import asyncio
from urllib.parse import quote

from mooncow.tools.base import Tool
from mooncow.tools.http import FetchResult, HttpFetcher

WIKIPEDIA_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/"
DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
MAX_QUERIES = 5


def _wikipedia_source(res: FetchResult) -> dict | None:
    if not res.ok or not isinstance(res.data, dict):
        return None
    data = res.data
    page = ((data.get("content_urls") or {}).get("desktop") or {}).get("page")
    return {
        "title": data.get("title") or "",
        "extract": (data.get("extract") or "").strip(),
        "url": page or "",
    }


def _duckduckgo_source(res: FetchResult) -> dict | None:
    if not res.ok or not isinstance(res.data, dict):
        return None
    data = res.data
    abstract = (data.get("AbstractText") or data.get("Abstract") or "").strip()
    if not abstract and not data.get("Heading"):
        return None
    return {
        "heading": data.get("Heading") or "",
        "abstract": abstract,
        "url": data.get("AbstractURL") or "",
    }


class MultiSourceSearchTool(Tool):
    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    @property
    def name(self) -> str:
        return "multi_source_search"

    @property
    def description(self) -> str:
        return (
            "Keyless meta-search across public encyclopedic sources. Use it to scope a "
            "topic, gather starting links and pull quick facts. Pass 1-5 short queries."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "queries": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 1,
                    "maxItems": MAX_QUERIES,
                    "description": "Search queries; vary phrasing for better coverage.",
                },
            },
            "required": ["queries"],
        }

    async def execute(self, args: dict) -> dict:
        queries = [str(q).strip() for q in args.get("queries") or [] if str(q).strip()]
        if not queries:
            return {"error": "queries must contain at least one non-empty string"}
        results = []
        for query in queries[:MAX_QUERIES]:
            results.append({"query": query, "sources": await self._search_one(query)})
        return {"results": results}

    async def _search_one(self, query: str) -> dict:
        wiki, ddg = await asyncio.gather(
            self.fetcher.get_json(WIKIPEDIA_SUMMARY_URL + quote(query.replace(" ", "_"))),
            self.fetcher.get_json(
                DUCKDUCKGO_URL,
                params={"q": query, "format": "json", "no_redirect": "1", "no_html": "1"},
            ),
        )
        sources: dict = {"core_always": {}, "errors": []}
        wikipedia = _wikipedia_source(wiki)
        if wikipedia:
            sources["core_always"]["wikipedia"] = wikipedia
        elif not wiki.ok:
            sources["errors"].append(f"wikipedia ({wiki.error})")
        duckduckgo = _duckduckgo_source(ddg)
        if duckduckgo:
            sources["duckduckgo"] = duckduckgo
        elif not ddg.ok:
            sources["errors"].append(f"duckduckgo ({ddg.error})")
        return sources
