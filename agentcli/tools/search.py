"""Read-only discovery tools: glob, grep and ls."""

import asyncio
import os
import re
from pathlib import Path

from pydantic import Field

from agentcli.models.llm import ToolResult
from agentcli.tools.base import ToolContext, ToolDefinition, ToolInput
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


class GlobInput(ToolInput):
    """Input schema for the glob tool."""

    pattern: str = Field(..., min_length=1, description="The glob pattern, e.g. '**/*.py'")
    path: str = Field(".", description="Directory to search from (defaults to the working directory)")


class GrepInput(ToolInput):
    """Input schema for the grep tool."""

    file_path: str = Field(..., alias="filePath", min_length=1, description="Path to the file")
    pattern: str = Field(..., min_length=1, description="Regex pattern to search")


class ListDirectoryInput(ToolInput):
    """Input schema for the ls tool."""

    dir_path: str = Field(..., alias="dirPath", min_length=1, description="Directory path")


def create_glob_tool(context: ToolContext) -> ToolDefinition:
    async def glob_handler(params: GlobInput) -> ToolResult:
        base = context.sandbox.restrict(params.path)
        pattern = context.sandbox.restrict_pattern(params.pattern)

        def expand() -> list[str]:
            matches = sorted(base.glob(pattern))
            return [str(match) for match in context.sandbox.filter_inside(matches)]

        files = await asyncio.to_thread(expand)
        logger.debug(f"Glob {pattern!r} under {base} matched {len(files)} paths")
        return ToolResult.ok(files=files)

    return ToolDefinition(
        name="glob",
        description="Finds files based on pattern matching, below the working directory or a given subdirectory",
        input_schema_class=GlobInput,
        handler=glob_handler,
    )


def create_grep_tool(context: ToolContext) -> ToolDefinition:
    async def grep_handler(params: GrepInput) -> ToolResult:
        safe_path = context.sandbox.restrict(params.file_path)
        try:
            regex = re.compile(params.pattern)
        except re.error as e:
            return ToolResult.fail(f"Invalid regular expression {params.pattern!r}: {e}")

        content = await asyncio.to_thread(safe_path.read_text, encoding="utf-8")
        matches = [line for line in content.split("\n") if regex.search(line)]
        return ToolResult.ok(matches=matches)

    return ToolDefinition(
        name="grep",
        description="Searches for a regular expression in a file's contents and returns the matching lines",
        input_schema_class=GrepInput,
        handler=grep_handler,
    )


def create_ls_tool(context: ToolContext) -> ToolDefinition:
    async def ls_handler(params: ListDirectoryInput) -> ToolResult:
        safe_path: Path = context.sandbox.restrict(params.dir_path)
        items = sorted(await asyncio.to_thread(os.listdir, safe_path))
        return ToolResult.ok(items=items)

    return ToolDefinition(
        name="ls",
        description="Lists files and directories",
        input_schema_class=ListDirectoryInput,
        handler=ls_handler,
    )
