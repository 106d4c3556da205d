"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from shop_agent.models.conversation import Action


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class LLMTool(BaseModel):
    """Catalog entry sent to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens


@dataclass
class ModelRequest:
    """Fully-assembled request for the model gateway."""

    system_prompt: str
    messages: list[LLMMessage]
    tool_catalog: list[LLMTool] = field(default_factory=list)
    model_id: str | None = None
    max_tokens: int | None = None


@dataclass
class ModelResponse:
    """Decoded response from the model gateway."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: LLMUsage
    model: str
    attempts: int = 1

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [block for block in self.content if isinstance(block, TextBlock)]

    @property
    def tool_use_blocks(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


@dataclass
class AgentLoopResult:
    """Outcome of one orchestration loop run."""

    text: str
    actions: list[Action]
    iterations: int
    tools_used: list[str]
    usage: LLMUsage
    messages: list[LLMMessage]
    model: str
    stop_reason: str | None = None
