"""Chat request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str = Field(..., min_length=1)
    conversation_id: str
    tenant_id: str
    agent_id: str
    customer_id: str | None = None
    current_product_id: str | None = None


class Action(BaseModel):
    """Client-facing instruction derived from a successful tool result."""

    type: str
    data: dict[str, Any]


class TokensUsed(BaseModel):
    """Token totals for one turn."""

    input: int = 0
    output: int = 0


class ResponseMetadata(BaseModel):
    """Metadata describing how a turn was produced."""

    model: str
    latency_ms: int
    tools_used: list[str] = Field(default_factory=list)
    iterations: int = 0
    tokens_used: TokensUsed | None = None


class ChatResponse(BaseModel):
    """Response model for the chat endpoint."""

    response: str
    actions: list[Action] = Field(default_factory=list)
    metadata: ResponseMetadata


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
