"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict

from agentcli.models.llm import ToolResult, ToolSchema
from agentcli.services.memory import MemoryNotes
from agentcli.services.permissions import PermissionGate
from agentcli.services.sandbox import PathSandbox
from agentcli.services.todos import TodoStore

ToolHandler = Callable[[Any], Awaitable[ToolResult]]


class ToolInput(BaseModel):
    """Base class for tool parameter schemas.

    Unknown fields are rejected; fields are exposed under their wire aliases.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


@dataclass
class ToolContext:
    """Explicit dependencies shared by the tools of one session."""

    sandbox: PathSandbox
    permissions: PermissionGate
    shell_timeout: float | None = 120.0
    memory: MemoryNotes | None = None
    todos: TodoStore = field(default_factory=TodoStore)


@dataclass
class ToolDefinition:
    """Definition of a tool available to the agent."""

    name: str
    description: str
    input_schema_class: type[ToolInput]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> ToolInput:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_schema(self) -> ToolSchema:
        """Declaration handed to the model collaborator."""
        return ToolSchema(name=self.name, description=self.description, input_schema=self.get_json_schema())
