"""Anthropic API client with rate limiting, retries and error classification."""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Any, Literal

import anthropic
import tiktoken
from anthropic import AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel, ValidationError

from shop_agent.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMTool,
    LLMUsage,
    ModelRequest,
    ModelResponse,
    TextBlock,
    ToolUseBlock,
)
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

AUTH_STATUS_CODES = (401, 403)


class ModelGatewayError(Exception):
    """Base class for classified model gateway failures."""


class AuthError(ModelGatewayError):
    """Credentials were rejected by the provider. Never retried."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ExhaustedRetriesError(ModelGatewayError):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__(f"Failed to get response from Anthropic after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class MalformedResponseError(ModelGatewayError):
    """A content block of a known type could not be decoded."""


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 1024
    max_retries: int = 3
    retry_delay: float = 1.0  # Backoff base, doubled after each failed attempt
    timeout: float = 60.0

    max_message_tokens: int = 2000
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    @classmethod
    def from_env(cls) -> "AnthropicConfig":
        """Build configuration from ANTHROPIC_* environment variables."""
        return cls(
            model=os.getenv("ANTHROPIC_MODEL", cls.model),
            max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", cls.max_tokens),
            max_retries=_env_int("ANTHROPIC_MAX_RETRIES", cls.max_retries),
            retry_delay=_env_float("ANTHROPIC_RETRY_DELAY", cls.retry_delay),
            timeout=_env_float("ANTHROPIC_TIMEOUT", cls.timeout),
            max_message_tokens=_env_int("ANTHROPIC_MAX_MESSAGE_TOKENS", cls.max_message_tokens),
            requests_per_minute=_env_int("ANTHROPIC_REQUESTS_PER_MINUTE", cls.requests_per_minute),
            tokens_per_minute=_env_int("ANTHROPIC_TOKENS_PER_MINUTE", cls.tokens_per_minute),
        )


class AnthropicRateLimiter:
    """Client-side rate limiter using the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the request and token budgets."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        await self._wait_for(self.request_limit, identifier, cost=1)
        await self._wait_for(self.token_limit, f"{identifier}_tokens", cost=max(1, estimated_tokens))

    async def _wait_for(self, limit, identifier: str, cost: int) -> None:
        if self.limiter.hit(limit, identifier, cost=cost):
            return

        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"Rate limit {limit} exceeded for {identifier}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


class AnthropicClient:
    """Model gateway: sends assembled requests to Claude and classifies failures."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration (defaults to values from the environment)
            client: Preconstructed SDK client, mainly for tests
        """
        self.config = config or AnthropicConfig.from_env()

        if client is None:
            anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY environment variable is required")
            # Retries are owned by this gateway, not the SDK
            client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0, timeout=self.config.timeout)

        self.client = client
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    @property
    def model(self) -> str:
        return self.config.model

    async def send(self, request: ModelRequest) -> ModelResponse:
        """Send a request to Claude.

        Args:
            request: System prompt, alternating history and tool catalog

        Returns:
            The fully decoded response

        Raises:
            AuthError: Credentials rejected (single attempt)
            ExhaustedRetriesError: Every attempt failed with a retryable error
        """
        if not request.messages:
            raise ValueError("Model request requires a non-empty message history")

        estimated_tokens = self._estimate_tokens(request.messages, request.system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params = {
            "model": request.model_id or self.config.model,
            "max_tokens": request.max_tokens or self.config.max_tokens,
            "system": request.system_prompt,
            "messages": [message.model_dump() for message in request.messages],
        }
        if request.tool_catalog:
            tools = self._with_cache_control(request.tool_catalog)
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        logger.debug(
            f"Creating message with {len(request.messages)} messages, {len(request.tool_catalog)} tools, "
            f"~{estimated_tokens} tokens"
        )
        return await self._request_with_retries(request_params)

    async def _request_with_retries(self, request_params: dict[str, Any]) -> ModelResponse:
        """Execute the API request with exponential backoff on retryable failures."""
        last_error: Exception | None = None

        for attempt in range(1, self.config.max_retries + 1):
            try:
                logger.debug(f"Calling Anthropic API (attempt {attempt}/{self.config.max_retries})")
                message = await self.client.messages.create(**request_params)
                return self._decode_response(message, attempt)

            except anthropic.APIStatusError as e:
                if e.status_code in AUTH_STATUS_CODES:
                    logger.error(f"Anthropic authentication error ({e.status_code}): {e}")
                    raise AuthError(f"Authentication error: {e}", status_code=e.status_code) from e
                last_error = e
                logger.warning(f"Anthropic API error (attempt {attempt}/{self.config.max_retries}): {e}")

            except Exception as e:
                last_error = e
                logger.warning(f"Anthropic request failed (attempt {attempt}/{self.config.max_retries}): {e!r}")

            if attempt < self.config.max_retries:
                await asyncio.sleep(self.config.retry_delay * (2 ** (attempt - 1)))

        raise ExhaustedRetriesError(self.config.max_retries, last_error) from last_error

    def _decode_response(self, message: Any, attempts: int) -> ModelResponse:
        usage = LLMUsage()
        if message.usage:
            usage = LLMUsage(
                input_tokens=message.usage.input_tokens,
                output_tokens=message.usage.output_tokens,
                total_tokens=message.usage.input_tokens + message.usage.output_tokens,
                cache_creation_input_tokens=getattr(message.usage, "cache_creation_input_tokens", None) or 0,
                cache_read_input_tokens=getattr(message.usage, "cache_read_input_tokens", None) or 0,
            )

        logger.debug(f"Response received - Stop reason: {message.stop_reason}, Content blocks: {len(message.content)}")

        return ModelResponse(
            content=self._convert_content_blocks(message.content),
            stop_reason=message.stop_reason,
            usage=usage,
            model=message.model,
            attempts=attempts,
        )

    def _convert_content_blocks(self, anthropic_content: list[Any]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump() if hasattr(block, "model_dump") else dict(block)
            block_type = block_dict.get("type")

            try:
                if block_type == "text":
                    converted_blocks.append(TextBlock.model_validate(block_dict))
                elif block_type == "tool_use":
                    converted_blocks.append(ToolUseBlock.model_validate(block_dict))
                else:
                    logger.warning(f"Skipping unsupported content block type: {block_type}")
            except ValidationError as e:
                raise MalformedResponseError(f"Malformed {block_type} block: {e}") from e

        return converted_blocks

    @staticmethod
    def _with_cache_control(tools: list[LLMTool]) -> list[AnthropicTool]:
        """Mark the last tool so the whole catalog is cached."""
        return [
            AnthropicTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                cache_control=CacheControl() if i == len(tools) - 1 else None,
            )
            for i, tool in enumerate(tools)
        ]

    def _estimate_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt

        for message in messages:
            if isinstance(message.content, str):
                text_content += message.content
            else:
                for block in message.content:
                    if isinstance(block, TextBlock):
                        text_content += block.text
                    elif hasattr(block, "content"):
                        text_content += block.content

        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message."""
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create the process-wide Anthropic client."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient()
    return _anthropic_client
