"""Mock tool implementations for testing."""

import asyncio

from mooncow.tools.base import Tool


class EchoTool(Tool):
    def __init__(self):
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes the input message back."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        }

    async def execute(self, args: dict) -> dict:
        self.calls.append(args)
        return {"echo": args.get("message", "")}


class SearchTool(Tool):
    """Stands in for multi_source_search with a canned payload."""

    def __init__(self):
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "multi_source_search"

    @property
    def description(self) -> str:
        return "Searches several public sources."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "queries": {"type": "array", "items": {"type": "string"}, "minItems": 1},
            },
            "required": ["queries"],
        }

    async def execute(self, args: dict) -> dict:
        self.calls.append(args)
        return {
            "results": [
                {
                    "query": q,
                    "sources": {
                        "core_always": {
                            "wikipedia": {
                                "title": q.title(),
                                "extract": f"{q} is a topic.",
                                "url": f"https://en.wikipedia.org/wiki/{q}",
                            }
                        },
                        "errors": [],
                    },
                }
                for q in args["queries"]
            ]
        }


class FailingTool(Tool):
    """Returns an error payload instead of raising."""

    @property
    def name(self) -> str:
        return "failing"

    @property
    def description(self) -> str:
        return "Always reports an error."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, args: dict) -> dict:
        return {"error": "upstream unavailable"}


class RaisingTool(Tool):
    @property
    def name(self) -> str:
        return "raising"

    @property
    def description(self) -> str:
        return "Raises an exception."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, args: dict) -> dict:
        raise RuntimeError("boom")


class SlowTool(Tool):
    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Sleeps longer than any sane timeout."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, args: dict) -> dict:
        await asyncio.sleep(10)
        return {"ok": True}
