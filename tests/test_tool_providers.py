"""Tests for the reference tool providers and their HTTP layer."""

from __future__ import annotations

import httpx

from mooncow.tools.http import FetchResult, HttpFetcher, ResponseCache
from mooncow.tools.reader import (
    JinaPageSummariesTool,
    JinaReaderTool,
    canonical_link,
    summarize_page,
)
from mooncow.tools.search import MultiSourceSearchTool
from mooncow.tools.summarizer import summarize

WIKI = {
    "title": "Python (programming language)",
    "extract": "Python is a high-level language.",
    "content_urls": {"desktop": {"page": "https://en.wikipedia.org/wiki/Python"}},
}
DDG = {"Heading": "Python", "AbstractText": "A language.", "AbstractURL": "https://ddg.example/python"}


def _fetcher(handler, cache: ResponseCache | None = None) -> HttpFetcher:
    return HttpFetcher(cache=cache, timeout=1.0, transport=httpx.MockTransport(handler))


class TestResponseCache:
    def test_only_successes_are_kept(self):
        cache = ResponseCache()
        cache.put(FetchResult("u1", ok=False, error="x"))
        cache.put(FetchResult("u2", ok=True, data=1))
        assert cache.get("u1") is None
        assert cache.get("u2").data == 1

    def test_oldest_evicted(self):
        cache = ResponseCache(max_entries=2)
        for i in range(3):
            cache.put(FetchResult(f"u{i}", ok=True))
        assert len(cache) == 2
        assert cache.get("u0") is None


class TestHttpFetcher:
    async def test_cache_hit_skips_request(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json={"a": 1})

        fetcher = _fetcher(handler, ResponseCache())
        first = await fetcher.get_json("https://x.test/a", params={"q": "1"})
        second = await fetcher.get_json("https://x.test/a", params={"q": "1"})
        assert first.data == second.data == {"a": 1}
        assert len(calls) == 1

    async def test_timeout_degrades(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        res = await _fetcher(handler).get_text("https://x.test/slow")
        assert not res.ok
        assert res.error == "timeout"

    async def test_http_error_status(self):
        res = await _fetcher(lambda r: httpx.Response(404)).get_json("https://x.test/missing")
        assert not res.ok
        assert res.status == 404


class TestMultiSourceSearch:
    async def test_both_sources(self):
        def handler(request):
            if request.url.host == "en.wikipedia.org":
                assert request.url.path.endswith("/Python_language")
                return httpx.Response(200, json=WIKI)
            return httpx.Response(200, json=DDG)

        tool = MultiSourceSearchTool(_fetcher(handler))
        result = await tool.execute({"queries": ["Python language"]})

        sources = result["results"][0]["sources"]
        assert sources["core_always"]["wikipedia"]["url"] == "https://en.wikipedia.org/wiki/Python"
        assert sources["duckduckgo"]["abstract"] == "A language."
        assert sources["errors"] == []

    async def test_failed_source_is_partial(self):
        def handler(request):
            if request.url.host == "en.wikipedia.org":
                raise httpx.ConnectTimeout("slow", request=request)
            return httpx.Response(200, json=DDG)

        result = await MultiSourceSearchTool(_fetcher(handler)).execute({"queries": ["python"]})
        sources = result["results"][0]["sources"]
        assert "wikipedia" not in sources["core_always"]
        assert sources["duckduckgo"]["heading"] == "Python"
        assert sources["errors"] == ["wikipedia (timeout)"]

    async def test_empty_queries_error(self):
        tool = MultiSourceSearchTool(_fetcher(lambda r: httpx.Response(500)))
        result = await tool.execute({"queries": ["  "]})
        assert "error" in result


class TestJinaReader:
    async def test_read_pages(self):
        seen = []

        def handler(request):
            seen.append(request)
            if "broken" in str(request.url):
                return httpx.Response(502)
            return httpx.Response(200, text="Clean page text")

        tool = JinaReaderTool(_fetcher(handler), api_key="jk")
        result = await tool.execute(
            {"type": "read", "queries": ["https://a.test/page", "https://broken.test", "not a url"]}
        )

        assert result["mode"] == "read"
        ok, bad, invalid = result["summaries"]
        assert ok == {"url": "https://a.test/page", "status": "ok", "full_text": "Clean page text"}
        assert bad["status"] == "error" and bad["error"] == "HTTP 502"
        assert invalid["error"] == "not a URL"
        assert seen[0].url.host == "r.jina.ai"
        assert seen[0].url.path.endswith("a.test/page")
        assert seen[0].headers["authorization"] == "Bearer jk"

    async def test_search_needs_key(self):
        tool = JinaReaderTool(_fetcher(lambda r: httpx.Response(200, text="x")))
        result = await tool.execute({"type": "search", "queries": ["q"]})
        assert result == {"error": "jina search requires an API key"}


SOLAR_PAGE = (
    "# Solar Power\n\n"
    "Solar panels convert sunlight into electricity for homes and offices. "
    "Modern solar panels reach efficiencies above twenty percent in the field. "
    "The weather was nice.\n\n"
    "```\nprint('x')\n```\n"
)


class TestJinaPageSummaries:
    async def test_summaries(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            if "broken" in str(request.url):
                return httpx.Response(502)
            return httpx.Response(200, text=SOLAR_PAGE)

        tool = JinaPageSummariesTool(_fetcher(handler))
        result = await tool.execute(
            {"links": ["a.test/solar?utm_source=x", "https://a.test/solar", "https://broken.test/p"]}
        )

        ok, bad = result["summaries"]
        assert result["meta"] == {"tool": "jina_page_summaries", "count": 2}
        assert ok["url"] == "https://a.test/solar"
        assert ok["title"] == "Solar Power"
        assert "Modern solar panels" in ok["summary"]
        assert "weather" not in ok["summary"]
        assert "print" not in ok["excerpt"]
        assert bad == {"url": "https://broken.test/p", "status": "error", "error": "HTTP 502"}
        assert len(seen) == 2

        lines = summarize("jina_page_summaries", result).splitlines()
        assert lines[:2] == ["jina_page_summaries:", "- Solar Power"]

    async def test_no_links_error(self):
        tool = JinaPageSummariesTool(_fetcher(lambda r: httpx.Response(200, text="x")))
        assert "error" in await tool.execute({"links": ["  "]})

    def test_canonical_link(self):
        assert canonical_link(" example.com/a?gclid=1&id=7 ") == "https://example.com/a?id=7"

    def test_short_page_falls_back_to_head(self):
        assert summarize_page("# T\n\nTiny page.") == "T Tiny page."
        assert summarize_page("") == ""
