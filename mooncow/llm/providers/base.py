"""Abstract base class for completion providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from mooncow.llm.types import CompletionRequest, StreamChunk


class Provider(ABC):
    """
    A provider encapsulates access to a single chat-completion endpoint.

    Implementations must support both a streamed body (many chunks) and a
    whole JSON response (a single chunk with ``done=True``), chosen by
    ``request.stream``.
    """

    @abstractmethod
    async def chat(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """
        Start a chat completion.

        Yields ``StreamChunk`` objects.  The last chunk has ``done=True``.
        Implementations may update *request* in place when they had to fall
        back to a different request shape.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield StreamChunk()  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
