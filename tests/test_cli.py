"""Tests for the command line surface and the chat handler."""

from __future__ import annotations

import os

import pytest
from rich.console import Console
from typer.testing import CliRunner

from mooncow import __version__
from mooncow.cli.app import app
from mooncow.cli.chat import ChatHandler
from mooncow.orchestrator.core import Orchestrator
from mooncow.tools.registry import ToolRegistry
from tests.mock_providers import MockProvider, text_response, tool_call_response
from tests.mock_tools import EchoTool

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in list(os.environ):
        if key.startswith("MOONCOW_"):
            monkeypatch.delenv(key)


class TestCommands:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"mooncow v{__version__}" in result.stdout

    def test_tools_list(self):
        result = runner.invoke(app, ["tools", "list"])
        assert result.exit_code == 0
        assert "multi_source_search" in result.stdout
        assert "jina" in result.stdout

    def test_disabled_tool_hidden(self, monkeypatch):
        monkeypatch.setenv("MOONCOW_TOOLS_DISABLED", "jina")
        result = runner.invoke(app, ["tools", "info", "jina"])
        assert result.exit_code == 1

    def test_config_file_and_model_flag(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("llm:\n  temperature: 0.1\n")
        result = runner.invoke(app, ["--config", str(path), "--model", "flagged", "config", "show"])
        assert result.exit_code == 0
        assert "flagged" in result.stdout
        assert "0.1" in result.stdout

    def test_validate_without_key(self, monkeypatch):
        monkeypatch.delenv("CEREBRAS_API_KEY", raising=False)
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 1
        assert "CEREBRAS_API_KEY" in result.stdout

    def test_bad_config_exits(self, tmp_path):
        (tmp_path / "mooncow.yaml").write_text("llm: [\n")
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 1
        assert "Config error" in result.stdout


def _handler(provider, *tools) -> tuple[ChatHandler, Console]:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    orch = Orchestrator(provider, registry, model="m", system_prompt="")
    console = Console(record=True, width=120)
    return ChatHandler(orch, console=console), console


class TestChatHandler:
    async def test_answer_kept_in_history(self):
        provider = MockProvider([text_response("<think>plan</think>Paris.", pieces=3)])
        handler, console = _handler(provider)

        assert await handler.ask("capital of France?") == "Paris."
        assert [m.role for m in handler.history] == ["user", "assistant"]
        output = console.export_text()
        assert "Paris." in output
        assert "plan" not in output

    async def test_untagged_reply_is_the_answer(self):
        handler, console = _handler(MockProvider([text_response("Just text.")]))
        assert await handler.ask("hi") == "Just text."
        assert "Just text." in console.export_text()

    async def test_tool_round_rendered(self):
        provider = MockProvider(
            [tool_call_response("echo", {"message": "x"}), text_response("</think>ok")]
        )
        handler, console = _handler(provider, EchoTool())
        assert await handler.ask("go") == "ok"
        output = console.export_text()
        assert "> tool echo" in output
        assert "[echo] OK" in output

    async def test_error_returns_none(self):
        provider = MockProvider([tool_call_response("echo", {"message": "x"})])
        handler, console = _handler(provider, EchoTool())
        handler.orchestrator.max_tool_loops = 0
        assert await handler.ask("go") is None
        assert handler.history == []
        assert "loop_exceeded" in console.export_text()

    def test_commands(self):
        handler, console = _handler(MockProvider(), EchoTool())
        handler.history.append(object())
        assert handler.handle_command("/clear")
        assert handler.history == []
        assert handler.handle_command("/thoughts")
        assert handler.show_thoughts
        assert handler.handle_command("/tools")
        assert "echo" in console.export_text()
        assert not handler.handle_command("/unknown")
        assert handler.handle_command("/quit")
