"""Console input that can be interrupted while waiting."""

import asyncio
import threading
from collections.abc import Callable
from contextlib import nullcontext
from typing import TypeVar

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from agentcli.cli.renderer import Renderer

T = TypeVar("T")


def _settle(future: asyncio.Future, result=None, error: BaseException | None = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


async def read_in_thread(func: Callable[[], T]) -> T:
    """Run a blocking terminal read on a daemon thread.

    Awaiting this can be cancelled (Ctrl-C cancels the main task) even though
    the read itself cannot be; the abandoned thread dies with the process.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def worker() -> None:
        try:
            value = func()
        except BaseException as e:
            loop.call_soon_threadsafe(_settle, future, None, e)
        else:
            loop.call_soon_threadsafe(_settle, future, value)

    threading.Thread(target=worker, name="agentcli-input", daemon=True).start()
    return await future


async def ask_text(console: Console, label: str = "[bold cyan]You[/bold cyan]") -> str | None:
    """Ask for a line of input. Returns None at end of input."""
    try:
        return await read_in_thread(lambda: Prompt.ask(f"\n{label}", console=console))
    except EOFError:
        return None


async def ask_confirm(console: Console, question: str) -> bool:
    """Ask a yes/no question. End of input counts as no."""
    try:
        return await read_in_thread(
            lambda: Confirm.ask(f"[magenta]?[/magenta] {escape(question)}", console=console, default=False)
        )
    except EOFError:
        return False


class ConsolePrompter:
    """Permission prompter backed by the terminal."""

    def __init__(self, console: Console, renderer: Renderer | None = None):
        self.console = console
        self.renderer = renderer

    async def __call__(self, description: str) -> bool:
        with self.renderer.paused() if self.renderer is not None else nullcontext():
            self.console.print()
            return await ask_confirm(self.console, description)
