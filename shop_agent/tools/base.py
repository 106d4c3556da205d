"""Base types and definitions for tools."""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from shop_agent.models.llm import LLMTool

CONVERSATION_NOT_FOUND = "No encontré esta conversación en la tienda"


@dataclass
class ToolContext:
    """Scope a tool runs in.

    ``customer_id`` may be filled in mid-turn by ``identify_customer`` so later
    tools in the same turn act for that customer.
    """

    conversation_id: str
    tenant_id: str
    customer_id: str | None = None


class ToolResult(BaseModel):
    """Uniform result envelope returned by every tool."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_content(self) -> str:
        """Serialize for the tool_result content field."""
        return json.dumps(self.model_dump(exclude_none=True), ensure_ascii=False, default=str)


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant.

    The input model is both the JSON schema advertised to the model and the
    validator applied to the model's arguments, so the two cannot drift.
    """

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    display: bool = True  # Successful results with data become client actions

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: Any) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input if raw_input is not None else {})

    def as_llm_tool(self) -> LLMTool:
        return LLMTool(name=self.name, description=self.description, input_schema=self.get_json_schema())


class EmptyInput(BaseModel):
    """Input schema for tools that don't require parameters."""
