"""Command-line entry point."""

import asyncio
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape

from agentcli.cli.chat import ChatSession
from agentcli.cli.prompt import ConsolePrompter
from agentcli.cli.renderer import Renderer
from agentcli.clients.anthropic import AnthropicClient, AnthropicConfig
from agentcli.config import AgentConfig, ConfigError
from agentcli.prompts.system import create_system_prompt
from agentcli.services.agent import AgentLoop
from agentcli.services.dispatcher import ToolDispatcher
from agentcli.services.memory import MemoryNotes
from agentcli.services.permissions import PermissionGate
from agentcli.services.sandbox import PathSandbox
from agentcli.tools import ToolContext, ToolsRegistry
from agentcli.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_REQUEST = "Hi"


def read_initial_request(argv: Sequence[str], stdin=None) -> str:
    """Initial request from the arguments, else piped stdin, else a greeting."""
    if argv:
        request = " ".join(argv).strip()
        if request:
            return request

    stream = sys.stdin if stdin is None else stdin
    if stream is not None and not stream.isatty():
        piped = stream.read().strip()
        if piped:
            return piped

    return DEFAULT_REQUEST


def build_session(config: AgentConfig, console: Console) -> ChatSession:
    """Wire the agent loop and its collaborators for one session.

    Raises:
        ValueError: If the model client cannot be created
    """
    client = AnthropicClient(config=AnthropicConfig(model=config.model, max_tokens=config.max_tokens))

    renderer = Renderer(console, config.max_argument_chars, config.max_result_lines)
    prompter = None if config.unattended else ConsolePrompter(console, renderer)
    memory = MemoryNotes(config.memory_path) if config.memory_path is not None else None
    sandbox = PathSandbox(config.sandbox_root)

    context = ToolContext(
        sandbox=sandbox,
        permissions=PermissionGate(prompter, unattended=config.unattended),
        shell_timeout=config.shell_timeout,
        memory=memory,
    )
    registry = ToolsRegistry(context)

    def system_prompt() -> str:
        # Re-read every step so notes saved mid-round are visible
        return create_system_prompt(sandbox.root, memory.read() if memory else "")

    agent = AgentLoop(
        client,
        registry,
        ToolDispatcher(registry),
        system_prompt,
        on_event=renderer.handle,
        step_budget=config.step_budget,
        parallel_tool_calls=config.parallel_tool_calls,
    )
    logger.info(f"Session ready: model={config.model}, root={sandbox.root}, tools={registry.get_tool_names()}")

    return ChatSession(agent, renderer, console, unattended=config.unattended)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the agent CLI and return the exit code."""
    args = sys.argv[1:] if argv is None else list(argv)
    console = Console()

    try:
        config = AgentConfig.from_env()
        setup_logging(LogConfig(level=config.log_level, file=config.log_file))
        session = build_session(config, console)
    except (ConfigError, ValueError, OSError) as e:
        console.print(f"[red]Fatal error:[/red] {escape(str(e))}", highlight=False)
        return 1

    try:
        request = read_initial_request(args)
        return asyncio.run(session.run(request))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
