"""Todo list tools backed by the session's TodoStore."""

from pydantic import Field

from agentcli.models.llm import ToolResult
from agentcli.services.todos import TodoItem
from agentcli.tools.base import ToolContext, ToolDefinition, ToolInput


class TodoReadInput(ToolInput):
    """The todo_read tool takes no parameters."""


class TodoWriteInput(ToolInput):
    """Input schema for the todo_write tool."""

    todos: list[TodoItem] = Field(..., description="Array of todo items")


def create_todo_read_tool(context: ToolContext) -> ToolDefinition:
    async def todo_read_handler(params: TodoReadInput) -> ToolResult:  # noqa: RUF029
        store = context.todos
        return ToolResult.ok(
            message=store.as_markdown(),
            todos=[item.model_dump() for item in store.items],
        )

    return ToolDefinition(
        name="todo_read",
        description="Reads all todo items from memory",
        input_schema_class=TodoReadInput,
        handler=todo_read_handler,
    )


def create_todo_write_tool(context: ToolContext) -> ToolDefinition:
    async def todo_write_handler(params: TodoWriteInput) -> ToolResult:  # noqa: RUF029
        store = context.todos
        store.replace(params.todos)
        return ToolResult.ok(
            message=store.as_markdown(),
            todos=[item.model_dump() for item in store.items],
        )

    return ToolDefinition(
        name="todo_write",
        description=(
            "Updates the todo list with provided items. Ensure you provide all the items in the list "
            "not just the ones you're updating or creating"
        ),
        input_schema_class=TodoWriteInput,
        handler=todo_write_handler,
    )
