"""Interactive chat session handler."""

from __future__ import annotations

import asyncio

from rich.console import Console

from mooncow.cli.output import OutputFormatter
from mooncow.llm.events import (
    AnswerEvent,
    ErrorEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from mooncow.llm.text_tool_parser import sanitize_answer
from mooncow.llm.types import Message
from mooncow.orchestrator.core import Orchestrator


class ChatHandler:
    """
    Manages the interactive chat loop.

    Keeps the user-visible conversation (user prompts and final answers);
    tool exchanges live only inside a single run.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        console: Console | None = None,
        show_thoughts: bool = False,
    ) -> None:
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.show_thoughts = show_thoughts
        self.history: list[Message] = []
        self._running = True

    def render_event(self, event: StreamEvent) -> None:
        if isinstance(event, ThoughtEvent):
            if self.show_thoughts:
                self.console.print(event.text, end="", style="dim", markup=False, highlight=False)
        elif isinstance(event, AnswerEvent):
            self.console.print(event.text, end="", markup=False, highlight=False)
        elif isinstance(event, ToolCallEvent):
            self.formatter.format_tool_call(event.name, event.arguments)
        elif isinstance(event, ToolResultEvent):
            self.formatter.format_tool_result(event.name, event.result, event.blob)
        elif isinstance(event, ErrorEvent):
            self.formatter.format_error(event.message, event.code)

    async def ask(self, prompt: str) -> str | None:
        """
        Stream one user prompt through the orchestrator.

        Returns the answer text, or ``None`` when the run ended in an error.
        """
        messages = self.history + [Message(role="user", content=prompt)]
        answer_parts: list[str] = []
        thought_parts: list[str] = []
        failed = False
        async for event in self.orchestrator.stream(messages):
            self.render_event(event)
            if isinstance(event, AnswerEvent):
                answer_parts.append(event.text)
            elif isinstance(event, ThoughtEvent):
                thought_parts.append(event.text)
            elif isinstance(event, ToolCallEvent):
                # Text before a tool call is never the answer.
                answer_parts.clear()
                thought_parts.clear()
            elif isinstance(event, ErrorEvent):
                failed = True
        if failed:
            self.console.print()
            return None

        # A model that never closes a think block produces thought spans only.
        if not answer_parts and thought_parts:
            answer_parts = thought_parts
            if not self.show_thoughts:
                self.console.print("".join(thought_parts), end="", markup=False, highlight=False)
        self.console.print()

        answer = sanitize_answer(
            "".join(answer_parts), self.orchestrator.think_open, self.orchestrator.think_close
        )
        self.history.append(Message(role="user", content=prompt))
        self.history.append(Message(role="assistant", content=answer))
        return answer

    def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.registry.list())
            return True

        if cmd == "/clear":
            self.history.clear()
            self.console.print("[dim]Conversation cleared.[/dim]")
            return True

        if cmd == "/thoughts":
            self.show_thoughts = not self.show_thoughts
            state = "on" if self.show_thoughts else "off"
            self.console.print(f"[dim]Thoughts {state}.[/dim]")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit      - Exit the chat\n"
                "  /tools     - List available tools\n"
                "  /clear     - Forget the conversation so far\n"
                "  /thoughts  - Toggle display of model reasoning\n"
                "  /help      - Show this help\n"
            )
            return True

        return False

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]Mooncow[/bold] - research chat\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/") and self.handle_command(user_input):
                continue

            self.console.print("[dim]mooncow>[/dim] ", end="")
            await self.ask(user_input)
