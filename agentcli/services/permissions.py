"""Session-scoped permission grants for sensitive operations."""

import asyncio
from collections.abc import Awaitable, Callable

from agentcli.utils.logging import get_logger

logger = get_logger(__name__)

Prompter = Callable[[str], Awaitable[bool]]

FILE_EDIT = "file-edit"
FILE_WRITE = "file-write"
MEMORY_APPEND = "memory-append"


def shell_operation_class(command_name: str) -> str:
    """Operation class for running a specific shell command."""
    return f"shell:{command_name}"


class PermissionGate:
    """Tracks grants per operation class and asks the user for undecided ones.

    A class is undecided until the user answers. "Yes" grants it for the rest of
    the session; "no" is not remembered, so the next request asks again.
    Prompts are serialized: only one question is on the terminal at a time.
    """

    def __init__(self, prompter: Prompter | None = None, unattended: bool = False):
        """Initialize the gate.

        Args:
            prompter: Async callable that asks a yes/no question
            unattended: Treat every request as granted without asking (CI only)
        """
        if prompter is None and not unattended:
            raise ValueError("An interactive permission gate needs a prompter")

        self._prompter = prompter
        self.unattended = unattended
        self._grants: dict[str, bool] = {}
        self._prompt_lock = asyncio.Lock()

    @property
    def grants(self) -> dict[str, bool]:
        """Copy of the current grants."""
        return dict(self._grants)

    def is_granted(self, operation_class: str) -> bool:
        """Check whether a class was already granted this session."""
        return self.unattended or self._grants.get(operation_class, False)

    async def request(self, operation_class: str, description: str) -> bool:
        """Ask for permission to perform an operation of the given class.

        Args:
            operation_class: Grant key, e.g. "shell:ls" or "file-write"
            description: Question shown to the user

        Returns:
            True if the operation may proceed

        Raises:
            RuntimeError: If the gate was switched to interactive without a prompter
        """
        if self.is_granted(operation_class):
            return True

        async with self._prompt_lock:
            # Another request may have granted this class while we waited
            if self.is_granted(operation_class):
                return True

            if self._prompter is None:
                raise RuntimeError(f"No prompter to ask about {operation_class}")
            allowed = await self._prompter(description)

        if allowed:
            logger.info(f"Permission granted for {operation_class}")
            self._grants[operation_class] = True
        else:
            logger.info(f"Permission denied for {operation_class}")

        return allowed
