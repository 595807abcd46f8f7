"""Mooncow -- streaming chat completions with an agentic tool loop."""

__version__ = "0.1.0"
