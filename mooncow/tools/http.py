"""
HTTP access for tool providers.

Tools never talk to ``httpx`` directly: they receive an :class:`HttpFetcher`,
which owns the per-request timeout and an optional :class:`ResponseCache`.
A failed or timed-out sub-request comes back as a ``FetchResult`` with
``ok=False`` so a tool can still return whatever the other sources produced.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "mooncow/0.1 (+https://github.com/mooncow)"


@dataclass
class FetchResult:
    url: str
    ok: bool
    status: int | None = None
    data: Any = None
    error: str | None = None


class ResponseCache:
    """
    Successful responses keyed by full request URL.

    Entries are never invalidated, only evicted oldest-first once
    ``max_entries`` is reached.  Callers that share one cache across user
    turns must not rely on it being fresh.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, FetchResult] = OrderedDict()

    def get(self, url: str) -> FetchResult | None:
        return self._entries.get(url)

    def put(self, result: FetchResult) -> None:
        if not result.ok:
            return
        self._entries[result.url] = result
        self._entries.move_to_end(result.url)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class HttpFetcher:
    """
    Parameters
    ----------
    cache:
        Optional response cache shared by the tools built on this fetcher.
    timeout:
        Seconds allowed for every single sub-request.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        cache: ResponseCache | None = None,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.cache = cache
        self.timeout = timeout
        self._transport = transport
        self._user_agent = user_agent

    async def get_json(
        self, url: str, params: dict | None = None, headers: dict | None = None
    ) -> FetchResult:
        return await self._get(url, params, headers, as_json=True)

    async def get_text(
        self, url: str, params: dict | None = None, headers: dict | None = None
    ) -> FetchResult:
        return await self._get(url, params, headers, as_json=False)

    async def _get(
        self, url: str, params: dict | None, headers: dict | None, *, as_json: bool
    ) -> FetchResult:
        full_url = str(httpx.URL(url, params=params)) if params else url
        if self.cache is not None:
            cached = self.cache.get(full_url)
            if cached is not None:
                return cached

        merged = {"User-Agent": self._user_agent, **(headers or {})}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport, follow_redirects=True
            ) as client:
                resp = await client.get(full_url, headers=merged)
        except httpx.TimeoutException:
            logger.info("Sub-request timed out after %.1fs: %s", self.timeout, full_url)
            return FetchResult(full_url, ok=False, error="timeout")
        except httpx.HTTPError as exc:
            logger.info("Sub-request failed: %s (%s)", full_url, exc)
            return FetchResult(full_url, ok=False, error=str(exc) or type(exc).__name__)

        if not resp.is_success:
            return FetchResult(
                full_url, ok=False, status=resp.status_code, error=f"HTTP {resp.status_code}"
            )
        if as_json:
            try:
                data = resp.json()
            except ValueError:
                return FetchResult(full_url, ok=False, status=resp.status_code, error="invalid JSON")
        else:
            data = resp.text

        result = FetchResult(full_url, ok=True, status=resp.status_code, data=data)
        if self.cache is not None:
            self.cache.put(result)
        return result
