"""
Model resolution.

The transport asks a resolver for an alternate model id when the endpoint
keeps rejecting the request shape.  ``"auto"`` as the preferred id means
"pick whatever the endpoint serves".
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

logger = logging.getLogger(__name__)

AUTO = "auto"
FALLBACK_MODEL = "llama-3.1-8b-instruct"

# Ordered preferences; every fragment of a pattern must occur in the id.
PREFERENCES: tuple[tuple[str, ...], ...] = (
    ("llama", "3.1", "70"),
    ("llama", "3.1", "8"),
    ("llama",),
    ("qwen",),
)


class ModelResolver(ABC):
    @abstractmethod
    async def resolve(self, preferred: str | None) -> str: ...


class StaticModelResolver(ModelResolver):
    """Always answers with the same model id."""

    def __init__(self, model: str) -> None:
        self.model = model

    async def resolve(self, preferred: str | None) -> str:
        return self.model


def pick_model(ids: list[str], preferred: str | None) -> str:
    """Choose a model from *ids*, honouring *preferred* when it is served."""
    if preferred and preferred != AUTO and preferred in ids:
        return preferred
    for pattern in PREFERENCES:
        for model_id in ids:
            lower = model_id.lower()
            if all(p in lower for p in pattern):
                return model_id
    return ids[0]


class HttpModelResolver(ModelResolver):
    """
    Resolves against the endpoint's ``GET /models`` listing.

    A failed listing never raises: the preferred id is returned unchanged, or
    ``FALLBACK_MODEL`` when the caller asked for ``"auto"``.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def resolve(self, preferred: str | None) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(f"{self._url}/models", headers=headers)
                resp.raise_for_status()
                data = resp.json()
            ids = [m.get("id") for m in (data.get("data") or []) if m.get("id")]
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Model listing failed: %s", exc)
            ids = []

        if not ids:
            return preferred if preferred and preferred != AUTO else FALLBACK_MODEL

        model = pick_model(ids, preferred)
        logger.info("Resolved model %r -> %r", preferred, model)
        return model
