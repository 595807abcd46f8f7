from __future__ import annotations

from abc import ABC, abstractmethod


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    return s


def is_error_result(result: object) -> bool:
    """A result carrying a string ``error`` field is a failed call."""
    return isinstance(result, dict) and isinstance(result.get("error"), str)


class Tool(ABC):
    """
    A tool provider.

    ``execute`` receives the parsed argument object and returns a JSON-like
    result.  Failures are reported as ``{"error": "..."}`` rather than raised;
    the orchestrator also converts stray exceptions into that shape.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @abstractmethod
    async def execute(self, args: dict) -> dict: ...

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }
