"""Terminal rendering of stream events."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.status import Status
from rich.text import Text

from agentcli.models.events import (
    ErrorEvent,
    StepBudgetExceeded,
    StreamEvent,
    TextDelta,
    ToolCallResult,
)
from agentcli.models.llm import ToolResult

MUTED = "bright_black"


def truncate_argument(value: Any, limit: int = 50) -> str:
    """Shorten an argument for display, escaping newlines."""
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    clipped = text[:limit].replace("\n", "\\n")
    if len(text) > limit:
        clipped += "..."
    return clipped


def preview_result(result: ToolResult, max_lines: int = 5) -> str:
    """First lines of a result's primary field."""
    data = result.primary
    if not isinstance(data, str):
        data = json.dumps(data, indent=2, ensure_ascii=False, default=str)

    lines = data.split("\n")
    preview = "\n".join(lines[:max_lines]).strip()
    if len(lines) > max_lines:
        preview += f"\n... ({len(lines) - max_lines} more lines)"
    return preview


class Renderer:
    """Writes events to the terminal as they arrive.

    The only state kept between events is the busy indicator, which is cleared
    by the first event that prints something, and the events held back while
    output is paused for a prompt.
    """

    def __init__(self, console: Console, max_argument_chars: int = 50, max_result_lines: int = 5):
        self.console = console
        self.max_argument_chars = max_argument_chars
        self.max_result_lines = max_result_lines
        self._status: Status | None = None
        self._paused = False
        self._pending: list[StreamEvent] = []

    @property
    def busy(self) -> bool:
        """Whether the busy indicator is on screen."""
        return self._status is not None

    def start_busy(self, text: str = "Thinking") -> None:
        """Show the busy indicator (only on an interactive terminal)."""
        if self._paused or self._status is not None or not self.console.is_terminal:
            return
        self._status = self.console.status(Text(text, style="green"), spinner="dots")
        self._status.start()

    def clear_busy(self) -> None:
        """Remove the busy indicator if it is shown."""
        if self._status is not None:
            self._status.stop()
            self._status = None

    @contextmanager
    def paused(self) -> Iterator[None]:
        """Hold back all output while the terminal is in use by a prompt.

        The spinner is stopped and cannot restart until the block exits. Events
        arriving meanwhile (e.g. a sibling tool finishing) are rendered afterwards,
        in arrival order.
        """
        if self._paused:
            yield
            return

        was_busy = self.busy
        self.clear_busy()
        self._paused = True
        try:
            yield
        finally:
            self._paused = False
            pending, self._pending = self._pending, []
            for event in pending:
                self.handle(event)
            if was_busy:
                self.start_busy()

    def handle(self, event: StreamEvent) -> None:
        """Render a single event."""
        if self._paused:
            self._pending.append(event)
            return

        if isinstance(event, TextDelta):
            self.clear_busy()
            self.console.print(event.text, end="", markup=False, highlight=False, emoji=False, soft_wrap=True)

        elif isinstance(event, ToolCallResult):
            self.clear_busy()
            self.render_tool_call(event)
            # The model runs again once the step's tools are done
            self.start_busy()

        elif isinstance(event, ErrorEvent):
            self.clear_busy()
            self.console.print(Text(event.detail, style="red"))

        elif isinstance(event, StepBudgetExceeded):
            self.clear_busy()
            self.console.print(
                Text(f"\nStopped after {event.step_budget} steps; the task may be incomplete.", style="yellow")
            )

    def render_tool_call(self, event: ToolCallResult) -> None:
        """Show a tool call with truncated arguments and the first lines of its result."""
        header = Text()
        header.append(event.tool_name, style="cyan")
        for i, (key, value) in enumerate(event.arguments.items()):
            header.append(", " if i else " ", style=MUTED)
            header.append(f"{key}:", style=MUTED)
            header.append(f" {truncate_argument(value, self.max_argument_chars)}")

        body = Text(
            preview_result(event.result, self.max_result_lines),
            style=MUTED if event.result.success else "red",
        )

        self.console.print()
        self.console.print()
        self.console.print(header, soft_wrap=True)
        self.console.print(body)
        self.console.print()

    def finish_round(self) -> None:
        """Close the output of a round."""
        self.clear_busy()
        self.console.print()
        self.console.print()
