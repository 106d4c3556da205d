"""Tool executor: validates model-issued tool calls and runs them."""

from typing import Any

from pydantic import ValidationError

from shop_agent.tools.base import ToolContext, ToolResult
from shop_agent.tools.registry import ToolsRegistry
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)


def format_validation_error(error: ValidationError) -> str:
    """Compact, model-readable description of invalid tool arguments."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        problems.append(f"{location}: {item['msg']}")
    return "Argumentos inválidos - " + "; ".join(problems)


class ToolExecutor:
    """Turns a tool name plus raw arguments into a store operation and a result envelope."""

    def __init__(self, registry: ToolsRegistry):
        self.registry = registry

    def is_display_tool(self, name: str) -> bool:
        """Whether successful results of this tool are rendered by the client."""
        tool = self.registry.get_tool(name)
        return bool(tool and tool.display)

    async def execute(self, name: str, raw_arguments: Any, context: ToolContext) -> ToolResult:
        """Execute a tool call.

        Never raises for malformed calls: unknown tools, invalid arguments and
        handler failures all come back as ``success=False`` results so the
        model can correct itself.
        """
        tool = self.registry.get_tool(name)
        if tool is None:
            logger.error(f"Unknown tool requested: {name}")
            return ToolResult.fail(f"unknown tool: {name}")

        try:
            params = tool.parse_input(raw_arguments)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {name}: {e.error_count()} errors")
            return ToolResult.fail(format_validation_error(e))

        logger.debug(f"Executing tool {name} for conversation {context.conversation_id}")
        try:
            result = await tool.handler(params, context)
        except Exception:
            logger.exception(f"Tool {name} failed in conversation {context.conversation_id}")
            return ToolResult.fail(f"Error interno ejecutando {name}. Intenta de nuevo o escala a un humano.")

        if result.success:
            logger.debug(f"Tool {name} succeeded")
        else:
            logger.info(f"Tool {name} returned error: {result.error}")
        return result
