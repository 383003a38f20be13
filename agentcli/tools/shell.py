"""Shell command execution tool."""

import asyncio
import os
import re
import shlex
import signal

from pydantic import Field

from agentcli.models.llm import ToolResult
from agentcli.services.permissions import shell_operation_class
from agentcli.tools.base import ToolContext, ToolDefinition, ToolInput
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)

# Best-effort denylist; not a security boundary.
DANGEROUS_COMMAND_PATTERN = re.compile(
    r"(rm\s+-rf\s*/"
    r"|\bsudo\b"
    r"|\beval\b"
    r"|\bexec\s+[^&|;]"
    r"|\bmkfs"
    r"|:\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"
    r"|\bdd\b[^|;&]*\bof=/dev/"
    r"|>\s*/dev/(sd|hd|nvme|disk))",
    re.IGNORECASE,
)


class ShellTimeout(Exception):
    """A shell command ran past its time limit and was killed."""


class BashInput(ToolInput):
    """Input schema for the shell tool."""

    command: str = Field(..., min_length=1, description="The shell command to execute")
    timeout: float | None = Field(
        None,
        gt=0,
        le=3600,
        description="Seconds before the command is killed (defaults to the session setting)",
    )


# Splits a shell line into simple commands. `>&` and `&>` are redirections, `${` is expansion
COMMAND_SEPARATOR_PATTERN = re.compile(r"\|\||&&|\$\(|(?<![<>])&(?!>)|\{(?=\s)|(?<=\s)\}|[;|\n`()]")
ASSIGNMENT_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
SHELL_KEYWORDS = {"!", "{", "}", "if", "then", "else", "elif", "fi", "do", "done", "while", "until", "esac", "time"}
# The words after these name variables and patterns, not commands
NON_COMMAND_KEYWORDS = {"for", "select", "case", "function"}


def command_name(segment: str) -> str:
    """First word of a simple command, skipping leading variable assignments."""
    try:
        words = shlex.split(segment)
    except ValueError:
        words = segment.split()
    words = [word.strip("\"'") for word in words]
    while words and (not words[0] or words[0] in SHELL_KEYWORDS or ASSIGNMENT_PATTERN.match(words[0])):
        words.pop(0)
    if not words or words[0] in NON_COMMAND_KEYWORDS:
        return ""
    return words[0]


def command_names(command: str) -> list[str]:
    """Distinct command names in a shell line, in order of appearance.

    Chained, piped, backgrounded and substituted commands each contribute their
    own name, so every program the line runs needs its own grant.
    """
    names: list[str] = []
    for segment in COMMAND_SEPARATOR_PATTERN.split(command):
        name = command_name(segment)
        if name and name not in names:
            names.append(name)
    return names or [command.strip()]


def is_dangerous(command: str) -> bool:
    """Check a command against the denylist."""
    return DANGEROUS_COMMAND_PATTERN.search(command) is not None


def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill the command and everything it started."""
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def run_command(command: str, cwd: str, timeout: float | None) -> tuple[int, str]:
    """Run a command through the shell.

    Returns:
        Exit code and stdout followed by stderr

    Raises:
        ShellTimeout: If the command does not finish within ``timeout`` seconds
    """
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as e:
        _kill(process)
        await process.wait()
        raise ShellTimeout(f"Command timed out after {timeout:g}s") from e
    except asyncio.CancelledError:
        _kill(process)
        raise

    output = stdout.decode("utf-8", errors="replace") + stderr.decode("utf-8", errors="replace")
    return process.returncode or 0, output


def create_bash_tool(context: ToolContext) -> ToolDefinition:
    async def bash_handler(params: BashInput) -> ToolResult:
        if is_dangerous(params.command):
            logger.warning(f"Blocked dangerous command: {params.command}")
            return ToolResult.fail("Potentially dangerous command detected")

        for name in command_names(params.command):
            allowed = await context.permissions.request(
                shell_operation_class(name),
                f"Allow executing '{name}'? ({params.command})",
            )
            if not allowed:
                return ToolResult.fail(f"Permission denied for command '{name}'")

        timeout = params.timeout or context.shell_timeout
        logger.debug(f"Running shell command: {params.command} (timeout: {timeout})")
        try:
            exit_code, output = await run_command(params.command, str(context.sandbox.root), timeout)
        except ShellTimeout as e:
            return ToolResult.fail(str(e), retryable=True)

        if exit_code != 0:
            return ToolResult.fail(
                f"Command failed with exit code {exit_code}\n{output}".strip(),
                output=output,
                exitCode=exit_code,
            )

        return ToolResult.ok(output=output, exitCode=exit_code)

    return ToolDefinition(
        name="bash",
        description=(
            "Executes a shell command in the working directory and returns its combined output. "
            "Each distinct command name needs the user's permission once per session."
        ),
        input_schema_class=BashInput,
        handler=bash_handler,
    )
