"""Tools for the coding agent."""

from agentcli.tools.base import ToolContext, ToolDefinition
from agentcli.tools.registry import ToolsRegistry

__all__ = ["ToolContext", "ToolDefinition", "ToolsRegistry"]
