"""Memory notes tool."""

import asyncio

from pydantic import Field

from agentcli.models.llm import ToolResult
from agentcli.services.memory import MemoryNotes
from agentcli.services.permissions import MEMORY_APPEND
from agentcli.tools.base import ToolContext, ToolDefinition, ToolInput


class MemoryAppendInput(ToolInput):
    """Input schema for the memory_append tool."""

    note: str = Field(..., min_length=1, max_length=4000, description="Fact or preference to remember")


def create_memory_append_tool(context: ToolContext, memory: MemoryNotes) -> ToolDefinition:
    async def memory_append_handler(params: MemoryAppendInput) -> ToolResult:
        if not params.note.strip():
            return ToolResult.fail("Note must not be blank")

        if not await context.permissions.request(MEMORY_APPEND, f"Allow saving a note to '{memory.path.name}'?"):
            return ToolResult.fail("Permission denied for saving notes")

        await asyncio.to_thread(memory.append, params.note)
        return ToolResult.ok(message=f"Note saved to {memory.path.name}")

    return ToolDefinition(
        name="memory_append",
        description=(
            "Saves a short note to the persistent memory file so it is available in future sessions. "
            "Notes are only ever appended."
        ),
        input_schema_class=MemoryAppendInput,
        handler=memory_append_handler,
    )
