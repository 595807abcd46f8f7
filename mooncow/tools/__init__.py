"""Tool providers, registry and result summarising."""

from mooncow.tools.base import Tool
from mooncow.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolRegistry"]
