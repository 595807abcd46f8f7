from __future__ import annotations

import logging
import re

from mooncow.tools.base import Tool
from mooncow.types import UnknownToolError

logger = logging.getLogger(__name__)

_ALIAS_SEPARATORS = re.compile(r"[-\s]+")


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Tool registered: %s", tool.name)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def resolve(self, name: str) -> Tool:
        """
        Look up a tool by name, tolerating case and ``-``/space spellings.

        Raises ``UnknownToolError`` listing the registered names.
        """
        tool = self._tools.get(name)
        if tool is not None:
            return tool
        n = (name or "").strip().lower()
        alias = _ALIAS_SEPARATORS.sub("_", n)
        tool = self._tools.get(alias) or self._tools.get(n)
        if tool is None:
            raise UnknownToolError(name, self.names())
        return tool

    def names(self) -> list[str]:
        return sorted(self._tools)

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def to_openai_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]
