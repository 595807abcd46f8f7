"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- Cerebras, OpenAI itself, vLLM, LM Studio, LocalAI, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.

When the endpoint rejects the request shape (HTTP 400/422) the provider walks
a fallback ladder, each rung tried once and in order:

1.  the identical payload again,
2.  the payload with every tool-related field stripped,
3.  the stripped payload with an alternate model from the model resolver.

A rung that succeeds is adopted: the ``CompletionRequest`` is updated in place
so the following rounds of the same run keep the accepted shape.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from mooncow.llm.model_resolver import ModelResolver
from mooncow.llm.providers.base import Provider
from mooncow.llm.types import CompletionRequest, RawToolDelta, StreamChunk
from mooncow.types import ProtocolError, TransportError

logger = logging.getLogger(__name__)

SHAPE_REJECTIONS = frozenset({400, 422})
TOOL_FIELDS = ("tools", "tool_choice", "parallel_tool_calls")


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.cerebras.ai/v1"``.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        Per-request HTTP timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429,
        connection failures).
    model_resolver:
        Supplies the alternate model for the last fallback rung.  Without
        one that rung is skipped.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        url: str = "https://api.cerebras.ai/v1",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        model_resolver: ModelResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._resolver = model_resolver
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def endpoint(self) -> str:
        return f"{self._url}/chat/completions"

    async def chat(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await self._send_with_fallbacks(client, request)
            try:
                if request.stream:
                    async for chunk in self._parse_sse_stream(response):
                        yield chunk
                else:
                    await response.aread()
                    try:
                        data = response.json()
                    except ValueError as exc:
                        raise ProtocolError(
                            f"Completion body is not JSON: {response.text[:200]}"
                        ) from exc
                    yield self._parse_non_stream(data)
            finally:
                # Also runs when the consumer abandons iteration early, which
                # aborts the in-flight body read.
                await response.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self, stream: bool) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def _send(self, client: httpx.AsyncClient, body: dict) -> httpx.Response:
        """
        POST *body* and return the opened (unread) response.

        Transient failures are retried; the last transient response is
        returned as-is so the caller can report it.
        """
        headers = self._build_headers(bool(body.get("stream")))
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s api_key=%s...",
            body.get("model"),
            len(body.get("tools") or []),
            len(body.get("messages") or []),
            body.get("stream"),
            self._api_key[:6] if self._api_key else "(none)",
        )

        for attempt in range(1 + self._max_retries):
            try:
                request = client.build_request(
                    "POST", self.endpoint, json=body, headers=headers
                )
                response = await client.send(request, stream=True)
            except httpx.TransportError as exc:
                if attempt < self._max_retries:
                    logger.warning("Transport failure (attempt %d): %s", attempt + 1, exc)
                    continue
                raise TransportError(f"Completion request failed: {exc}") from exc

            if _is_retryable(response.status_code) and attempt < self._max_retries:
                # Read the body so the connection is released.
                await response.aread()
                await response.aclose()
                logger.warning(
                    "Retryable HTTP %d (attempt %d)", response.status_code, attempt + 1
                )
                continue
            return response

        # Should never reach here.
        raise RuntimeError("unreachable")  # pragma: no cover

    async def _drain(self, response: httpx.Response) -> str:
        try:
            await response.aread()
            return response.text
        except httpx.HTTPError:
            return ""
        finally:
            await response.aclose()

    async def _send_with_fallbacks(
        self, client: httpx.AsyncClient, request: CompletionRequest
    ) -> httpx.Response:
        body = request.to_body()
        response = await self._send(client, body)
        if response.is_success:
            return response

        status = response.status_code
        error_text = await self._drain(response)
        if status not in SHAPE_REJECTIONS:
            logger.error("API error %d: %s", status, error_text[:400])
            raise TransportError(
                f"Completion API error: {status}", status_code=status, body=error_text
            )

        logger.warning(
            "HTTP %d rejected the request shape. Trying compatibility fallbacks. Raw: %s",
            status,
            error_text[:400],
        )

        # Rung 1: the identical payload once more.
        response = await self._send(client, body)
        if response.is_success:
            return response
        status, error_text = response.status_code, await self._drain(response)
        logger.warning("Identical retry failed: %d %s", status, error_text[:400])

        # Rung 2: strip every tool-related field.
        no_tools = {k: v for k, v in body.items() if k not in TOOL_FIELDS}
        response = await self._send(client, no_tools)
        if response.is_success:
            request.tools = None
            request.tool_choice = None
            logger.warning("Continuing without tools for this run")
            return response
        status, error_text = response.status_code, await self._drain(response)
        logger.warning("Retry without tools failed: %d %s", status, error_text[:400])

        # Rung 3: alternate model.
        if self._resolver is None:
            logger.warning("No model resolver configured; skipping alternate-model retry")
        else:
            alt_model = await self._resolver.resolve("auto")
            response = await self._send(client, {**no_tools, "model": alt_model})
            if response.is_success:
                request.tools = None
                request.tool_choice = None
                request.model = alt_model
                logger.warning("Continuing with alternate model %s", alt_model)
                return response
            status, error_text = response.status_code, await self._drain(response)
            logger.error("Retry with alternate model failed: %d %s", status, error_text[:400])

        raise TransportError(
            f"Completion API error: {status}", status_code=status, body=error_text
        )

    # ------------------------------------------------------------------
    # Streaming body
    # ------------------------------------------------------------------

    async def _parse_sse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[StreamChunk]:
        """
        Parse Server-Sent Events from the response body.

        Each SSE event has the form::

            data: {json}\\n\\n

        The sentinel ``data: [DONE]`` terminates the stream.
        """
        buffer = ""
        async for text in response.aiter_text():
            buffer += text

            while "\n" in buffer:
                line, buffer = buffer.split("\n", 1)
                line = line.rstrip("\r")

                if not line or not line.startswith("data:"):
                    # Empty line (event boundary), comment or other field.
                    continue

                data_str = line[len("data:"):].strip()
                if data_str == "[DONE]":
                    yield StreamChunk(done=True)
                    return

                try:
                    data = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse SSE data: %s", data_str[:200])
                    continue

                chunk = self._sse_data_to_chunk(data)
                if chunk is not None:
                    yield chunk

        # If the stream ends without [DONE], emit a final chunk.
        yield StreamChunk(done=True)

    def _sse_data_to_chunk(self, data: dict) -> StreamChunk | None:
        """Convert a parsed SSE ``data`` payload into a ``StreamChunk``."""
        choices = data.get("choices")
        if not choices:
            return None

        choice = choices[0]
        delta = choice.get("delta") or {}
        finish_reason = choice.get("finish_reason")

        text_delta = delta.get("content") or ""

        tool_deltas: list[RawToolDelta] | None = None
        raw_tcs = delta.get("tool_calls")
        if raw_tcs:
            tool_deltas = []
            for raw_tc in raw_tcs:
                idx = raw_tc.get("index")
                func = raw_tc.get("function") or {}
                tool_deltas.append(
                    RawToolDelta(
                        call_index=idx if isinstance(idx, int) else 0,
                        id=raw_tc.get("id"),
                        name_delta=func.get("name") or "",
                        args_delta=func.get("arguments") or "",
                        # finish_reason="tool_calls" closes the open calls.
                        done=finish_reason is not None,
                    )
                )

        if not text_delta and not tool_deltas:
            return None
        return StreamChunk(delta=text_delta, tool_deltas=tool_deltas)

    # ------------------------------------------------------------------
    # Whole body
    # ------------------------------------------------------------------

    def _parse_non_stream(self, data: dict) -> StreamChunk:
        """Convert a non-streaming response into a single ``StreamChunk``."""
        choices = data.get("choices") if isinstance(data, dict) else None
        message = choices[0].get("message") if choices else None
        if not isinstance(message, dict):
            raise ProtocolError("No message in completion")

        content = message.get("content")
        content = content if isinstance(content, str) else ""

        tool_deltas: list[RawToolDelta] | None = None
        raw_tcs = message.get("tool_calls")
        if raw_tcs:
            tool_deltas = []
            for idx, raw_tc in enumerate(raw_tcs):
                func = raw_tc.get("function") or {}
                args = func.get("arguments")
                if isinstance(args, dict):
                    args = json.dumps(args)
                tool_deltas.append(
                    RawToolDelta(
                        call_index=idx,
                        id=raw_tc.get("id"),
                        name_delta=func.get("name") or "",
                        args_delta=args or "",
                        done=True,
                    )
                )

        return StreamChunk(delta=content, tool_deltas=tool_deltas, done=True)
