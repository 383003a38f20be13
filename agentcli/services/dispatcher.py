"""Validates, executes and normalizes tool calls."""

from typing import Any

from pydantic import ValidationError

from agentcli.models.llm import ToolResult
from agentcli.services.sandbox import SandboxViolation
from agentcli.tools.registry import ToolsRegistry
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


def describe_validation_error(error: ValidationError) -> str:
    """Describe the first violated constraint of a validation error."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    if location:
        return f"{location}: {first['msg']}"
    return first["msg"]


class ToolDispatcher:
    """Single boundary between the agent loop and tool code.

    ``dispatch`` always returns a ToolResult: unknown tools, invalid arguments
    and tool faults become failed results instead of exceptions.
    """

    def __init__(self, registry: ToolsRegistry):
        """Initialize dispatcher with the session's tool registry."""
        self.registry = registry

    async def dispatch(self, tool_name: str, raw_arguments: Any) -> ToolResult:
        """Run a tool call and normalize its outcome.

        Args:
            tool_name: Name requested by the model
            raw_arguments: Unvalidated arguments as sent by the model

        Returns:
            The tool's result, or a failed result describing what went wrong
        """
        tool = self.registry.get(tool_name)
        if tool is None:
            logger.error(f"Unknown tool requested: {tool_name}")
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        if not isinstance(raw_arguments, dict):
            return ToolResult.fail(
                f"Invalid arguments for {tool_name}: expected an object, got {type(raw_arguments).__name__}"
            )

        try:
            params = tool.parse_input(raw_arguments)
        except ValidationError as e:
            logger.info(f"Rejected arguments for {tool_name}: {e.error_count()} validation error(s)")
            return ToolResult.fail(f"Invalid arguments for {tool_name}: {describe_validation_error(e)}")

        logger.debug(f"Executing tool: {tool_name} with input: {raw_arguments}")
        try:
            result = await tool.handler(params)
        except SandboxViolation as e:
            return ToolResult.fail(str(e))
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            return ToolResult.fail(str(e) or type(e).__name__)

        if not isinstance(result, ToolResult):
            logger.error(f"Tool {tool_name} returned {type(result).__name__} instead of a ToolResult")
            return ToolResult.fail(f"Tool {tool_name} returned an invalid result")

        logger.debug(f"Tool {tool_name} {'succeeded' if result.success else 'failed'}: {str(result.primary)[:100]}")
        return result
