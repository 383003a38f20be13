"""System prompt for the coding agent."""

from datetime import datetime
from pathlib import Path


def create_system_prompt(root: Path, memory: str = "", now: datetime | None = None) -> str:
    """Build the system prompt for one step.

    Args:
        root: Sandbox root the tools operate in
        memory: Contents of the memory notes file, if any
        now: Current time (defaults to the local time)
    """
    current = (now or datetime.now().astimezone()).astimezone()
    timezone = current.tzname() or "UTC"

    prompt = f"""The assistant is a coding agent working in a terminal.

The current date is {current.isoformat(timespec="seconds")}.

The current user's timezone is {timezone}.

The working directory is {root}. File tools only accept paths inside it; relative paths are resolved against it.

The assistant uses the tools to inspect the project before changing it, prefers small targeted edits with \
file_edit over rewriting whole files, and keeps the todo list current on multi-step tasks. Shell commands and \
file changes may require the user's approval; when a tool reports "Permission denied", the assistant does not \
retry the same operation but explains what it wanted to do.

Tool results are JSON objects with a "success" flag. When a tool fails, the assistant reads the message and \
corrects its arguments rather than repeating the same call.

The assistant keeps its answers concise and writes plain text suitable for a terminal."""

    if memory.strip():
        prompt += f"\n\nNotes saved in earlier sessions:\n\n{memory.strip()}"

    return prompt
