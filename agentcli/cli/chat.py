"""Interactive chat session driving the agent loop."""

from collections.abc import Awaitable, Callable

from rich.console import Console
from rich.panel import Panel

from agentcli import __version__
from agentcli.cli.prompt import ask_text
from agentcli.cli.renderer import Renderer
from agentcli.models.conversation import Conversation
from agentcli.models.llm import Message
from agentcli.services.agent import AgentLoop, RoundResult
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)

InputReader = Callable[[], Awaitable[str | None]]

QUIT_COMMANDS = {"/quit", "/exit", "quit", "exit"}


class ChatSession:
    """Interactive chat interface around an AgentLoop."""

    def __init__(
        self,
        agent: AgentLoop,
        renderer: Renderer,
        console: Console,
        unattended: bool = False,
        read_input: InputReader | None = None,
    ):
        """Initialize the chat session.

        Args:
            agent: Loop that runs each round
            renderer: Displays the round's events
            console: Terminal for banners and notices
            unattended: Run a single round and return
            read_input: Reads the next line from the user; None at end of input
        """
        self.agent = agent
        self.renderer = renderer
        self.console = console
        self.unattended = unattended
        self.read_input = read_input or (lambda: ask_text(console))
        self.conversation = Conversation()
        self.rounds: list[RoundResult] = []

    async def run(self, initial_request: str) -> int:
        """Run the session until the user quits or input ends.

        Returns:
            The process exit code
        """
        if not self.unattended:
            self._show_banner()

        request: str | None = initial_request
        while request is not None:
            self.conversation.append(Message.user(request))
            await self._run_round()

            if self.unattended:
                return 0

            request = await self._next_request()

        self.console.print("\n[yellow]Goodbye![/yellow]")
        return 0

    async def _run_round(self) -> RoundResult:
        """Run one round with the busy indicator shown until output starts."""
        self.renderer.start_busy()
        try:
            result = await self.agent.run_round(self.conversation)
        finally:
            self.renderer.clear_busy()

        self.renderer.finish_round()
        logger.info(
            f"Round finished: {result.stop_reason} after {result.steps} steps, "
            f"{result.usage.input_tokens} input / {result.usage.output_tokens} output tokens"
        )
        self.rounds.append(result)
        return result

    async def _next_request(self) -> str | None:
        """Read input until it is a request, handling commands on the way."""
        while True:
            user_input = await self.read_input()
            if user_input is None:
                return None

            command = user_input.strip().lower()
            if command in QUIT_COMMANDS:
                return None
            elif command == "/help":
                self._show_help()
                continue
            elif command == "/clear":
                self.conversation = Conversation()
                self.console.print("[yellow]Conversation cleared[/yellow]")
                continue
            elif command == "":
                continue

            return user_input.strip()

    def _show_banner(self) -> None:
        self.console.print(
            Panel.fit(
                f"[bold blue]agentcli {__version__}[/bold blue]\n"
                "Working in the current directory. Shell commands and file changes ask for approval.\n"
                "Commands: /help, /clear, /quit",
                border_style="blue",
            )
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new conversation (approvals are kept)
• /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• Answering "y" to a prompt approves that kind of operation for the rest of the session
• Ctrl-C stops the current request and exits
• Notes saved with memory_append are loaded again in later sessions
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))
