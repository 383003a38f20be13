"""File reading, editing and writing tools."""

import asyncio

from pydantic import Field

from agentcli.models.llm import ToolResult
from agentcli.services.permissions import FILE_EDIT, FILE_WRITE
from agentcli.tools.base import ToolContext, ToolDefinition, ToolInput
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


class FileReadInput(ToolInput):
    """Input schema for the file_read tool."""

    file_path: str = Field(..., alias="filePath", min_length=1, description="Path to the file")


class FileEditInput(ToolInput):
    """Input schema for the file_edit tool."""

    file_path: str = Field(..., alias="filePath", min_length=1, description="Path to the file")
    search: str = Field(..., min_length=1, description="String to replace (first literal occurrence)")
    replace: str = Field(..., description="Replacement string")


class FileWriteInput(ToolInput):
    """Input schema for the file_write tool."""

    file_path: str = Field(..., alias="filePath", min_length=1, description="Path to the file")
    content: str = Field(..., description="Content to write")


def create_file_read_tool(context: ToolContext) -> ToolDefinition:
    async def file_read_handler(params: FileReadInput) -> ToolResult:
        safe_path = context.sandbox.restrict(params.file_path)
        content = await asyncio.to_thread(safe_path.read_text, encoding="utf-8")
        return ToolResult.ok(content=content)

    return ToolDefinition(
        name="file_read",
        description="Reads the contents of files",
        input_schema_class=FileReadInput,
        handler=file_read_handler,
    )


def create_file_edit_tool(context: ToolContext) -> ToolDefinition:
    async def file_edit_handler(params: FileEditInput) -> ToolResult:
        safe_path = context.sandbox.restrict(params.file_path)

        if not await context.permissions.request(FILE_EDIT, f"Allow editing '{params.file_path}'?"):
            return ToolResult.fail("Permission denied for file editing")

        content = await asyncio.to_thread(safe_path.read_text, encoding="utf-8")
        if params.search not in content:
            # Reported as success for compatibility, but flagged so the model can notice.
            logger.info(f"Edit of {safe_path} found no match; file left unchanged")
            return ToolResult.ok(
                message=f"No match found for the search string in {params.file_path}; file left unchanged",
                replaced=False,
            )

        new_content = content.replace(params.search, params.replace, 1)
        await asyncio.to_thread(safe_path.write_text, new_content, encoding="utf-8")
        return ToolResult.ok(message="File edited successfully", replaced=True)

    return ToolDefinition(
        name="file_edit",
        description=(
            "Makes targeted edits to specific files by replacing the first literal occurrence "
            "of 'search' with 'replace'"
        ),
        input_schema_class=FileEditInput,
        handler=file_edit_handler,
    )


def create_file_write_tool(context: ToolContext) -> ToolDefinition:
    async def file_write_handler(params: FileWriteInput) -> ToolResult:
        safe_path = context.sandbox.restrict(params.file_path)

        if not await context.permissions.request(FILE_WRITE, f"Allow writing '{params.file_path}'?"):
            return ToolResult.fail("Permission denied for file writing")

        data = params.content.encode("utf-8")

        def write() -> None:
            safe_path.parent.mkdir(parents=True, exist_ok=True)
            safe_path.write_bytes(data)

        await asyncio.to_thread(write)
        return ToolResult.ok(message="File written successfully", bytes=len(data))

    return ToolDefinition(
        name="file_write",
        description="Creates or overwrites files",
        input_schema_class=FileWriteInput,
        handler=file_write_handler,
    )
