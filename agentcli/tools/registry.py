"""Tools registry for the agent's fixed tool set."""

from agentcli.models.llm import ToolSchema
from agentcli.tools.base import ToolContext, ToolDefinition
from agentcli.tools.files import create_file_edit_tool, create_file_read_tool, create_file_write_tool
from agentcli.tools.memory import create_memory_append_tool
from agentcli.tools.search import create_glob_tool, create_grep_tool, create_ls_tool
from agentcli.tools.shell import create_bash_tool
from agentcli.tools.todo import create_todo_read_tool, create_todo_write_tool


class ToolsRegistry:
    """Registry of the tools the agent may call."""

    def __init__(self, context: ToolContext):
        """Initialize tools registry with the session's tool dependencies."""
        self.context = context
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the built-in tool set."""
        tools = [
            create_bash_tool(self.context),
            create_glob_tool(self.context),
            create_grep_tool(self.context),
            create_ls_tool(self.context),
            create_file_read_tool(self.context),
            create_file_edit_tool(self.context),
            create_file_write_tool(self.context),
            create_todo_read_tool(self.context),
            create_todo_write_tool(self.context),
        ]

        if self.context.memory is not None:
            tools.append(create_memory_append_tool(self.context, self.context.memory))

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a tool; names must be unique."""
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name} is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def get_schemas(self) -> list[ToolSchema]:
        """Declarations for every tool, in registration order."""
        return [tool.to_schema() for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools
