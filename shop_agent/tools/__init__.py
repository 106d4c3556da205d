"""Tools for the conversational commerce assistant."""

from shop_agent.tools.base import ToolContext, ToolDefinition, ToolResult
from shop_agent.tools.registry import TOOL_DOMAINS, ToolsRegistry, get_tools_registry

__all__ = ["TOOL_DOMAINS", "ToolContext", "ToolDefinition", "ToolResult", "ToolsRegistry", "get_tools_registry"]
