"""Tests for the Anthropic model gateway."""

from unittest.mock import AsyncMock, Mock, patch

import anthropic
import httpx
import pytest

from shop_agent.clients.anthropic import (
    AnthropicClient,
    AnthropicConfig,
    AuthError,
    ExhaustedRetriesError,
    MalformedResponseError,
)
from shop_agent.models.llm import LLMMessage, LLMTool, ModelRequest, TextBlock, ToolUseBlock

API_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def sdk_message(content: list[dict], stop_reason: str = "end_turn"):
    """Stand-in for an SDK Message object."""
    return Mock(
        content=content,
        stop_reason=stop_reason,
        model="claude-test",
        usage=Mock(input_tokens=12, output_tokens=7, cache_creation_input_tokens=0, cache_read_input_tokens=3),
    )


def rate_limit_error() -> anthropic.RateLimitError:
    return anthropic.RateLimitError("rate limited", response=httpx.Response(429, request=API_REQUEST), body=None)


def auth_error() -> anthropic.AuthenticationError:
    return anthropic.AuthenticationError("invalid x-api-key", response=httpx.Response(401, request=API_REQUEST), body=None)


def server_error() -> anthropic.InternalServerError:
    return anthropic.InternalServerError("overloaded", response=httpx.Response(500, request=API_REQUEST), body=None)


@pytest.fixture
def sdk():
    sdk = Mock()
    sdk.messages.create = AsyncMock()
    return sdk


@pytest.fixture
def gateway(sdk):
    config = AnthropicConfig(model="claude-test", max_retries=3, retry_delay=1.0, max_message_tokens=1000)
    return AnthropicClient(config=config, client=sdk)


@pytest.fixture
def request_():
    return ModelRequest(
        system_prompt="Eres Sofía.",
        messages=[LLMMessage(role="user", content="hola")],
        tool_catalog=[
            LLMTool(name="get_cart", description="Ver carrito", input_schema={"type": "object", "properties": {}}),
            LLMTool(name="search_products", description="Buscar", input_schema={"type": "object", "properties": {}}),
        ],
    )


class TestGatewayConstruction:
    """Tests for client construction."""

    def test_missing_api_key_raises(self):
        """Test that construction fails fast without credentials."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AnthropicClient()

    def test_config_from_env(self):
        """Test that configuration is read from ANTHROPIC_* variables."""
        env = {"ANTHROPIC_MODEL": "claude-x", "ANTHROPIC_MAX_RETRIES": "5", "ANTHROPIC_RETRY_DELAY": "0.5"}
        with patch.dict("os.environ", env, clear=True):
            config = AnthropicConfig.from_env()

        assert config.model == "claude-x"
        assert config.max_retries == 5
        assert config.retry_delay == 0.5
        assert config.max_tokens == 1024

    def test_defaults(self):
        """Test documented defaults for retries and backoff."""
        config = AnthropicConfig()
        assert config.max_retries == 3
        assert config.retry_delay == 1.0


class TestGatewaySend:
    """Tests for request building and response decoding."""

    @pytest.mark.asyncio
    async def test_decodes_text_and_tool_use_blocks(self, gateway, sdk, request_):
        """Test that SDK content blocks become typed content blocks."""
        sdk.messages.create.return_value = sdk_message(
            [
                {"type": "text", "text": "Déjame buscar"},
                {"type": "tool_use", "id": "toolu_1", "name": "search_products", "input": {"query": "gorra"}},
            ],
            stop_reason="tool_use",
        )

        response = await gateway.send(request_)

        assert isinstance(response.content[0], TextBlock)
        assert isinstance(response.content[1], ToolUseBlock)
        assert response.tool_use_blocks[0].input == {"query": "gorra"}
        assert response.stop_reason == "tool_use"
        assert response.usage.total_tokens == 19
        assert response.usage.cache_read_input_tokens == 3
        assert response.attempts == 1

    @pytest.mark.asyncio
    async def test_request_params(self, gateway, sdk, request_):
        """Test the wire request: model, system prompt, messages and cached tool catalog."""
        sdk.messages.create.return_value = sdk_message([{"type": "text", "text": "Hola"}])

        await gateway.send(request_)

        params = sdk.messages.create.call_args.kwargs
        assert params["model"] == "claude-test"
        assert params["max_tokens"] == 1024
        assert params["system"] == "Eres Sofía."
        assert params["messages"] == [{"role": "user", "content": "hola"}]
        assert "cache_control" not in params["tools"][0]
        assert params["tools"][-1]["cache_control"] == {"type": "ephemeral"}

    @pytest.mark.asyncio
    async def test_request_overrides_model_and_max_tokens(self, gateway, sdk, request_):
        """Test that per-request model id and max tokens win over config."""
        sdk.messages.create.return_value = sdk_message([{"type": "text", "text": "Hola"}])
        request_.model_id = "claude-other"
        request_.max_tokens = 256

        await gateway.send(request_)

        params = sdk.messages.create.call_args.kwargs
        assert params["model"] == "claude-other"
        assert params["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_skips_unknown_block_types(self, gateway, sdk, request_):
        """Test that unsupported block types are dropped instead of failing the turn."""
        sdk.messages.create.return_value = sdk_message(
            [{"type": "thinking", "thinking": "..."}, {"type": "text", "text": "Hola"}]
        )

        response = await gateway.send(request_)

        assert len(response.content) == 1
        assert response.text_blocks[0].text == "Hola"

    @pytest.mark.asyncio
    async def test_empty_history_rejected(self, gateway):
        """Test that an empty message list is a programming error."""
        with pytest.raises(ValueError):
            await gateway.send(ModelRequest(system_prompt="x", messages=[]))


class TestGatewayRetries:
    """Tests for failure classification and retry behavior."""

    @pytest.mark.asyncio
    async def test_auth_failure_attempted_once(self, gateway, sdk, request_):
        """Test that 401 is fatal and never retried."""
        sdk.messages.create.side_effect = auth_error()

        with patch("shop_agent.clients.anthropic.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(AuthError) as exc_info:
                await gateway.send(request_)

        assert exc_info.value.status_code == 401
        assert sdk.messages.create.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limited_twice_then_success(self, gateway, sdk, request_):
        """Test that transient failures are retried and attempts are counted."""
        sdk.messages.create.side_effect = [
            rate_limit_error(),
            rate_limit_error(),
            sdk_message([{"type": "text", "text": "¡Hola!"}]),
        ]

        with patch("shop_agent.clients.anthropic.asyncio.sleep", new_callable=AsyncMock) as sleep:
            response = await gateway.send(request_)

        assert response.text_blocks[0].text == "¡Hola!"
        assert response.attempts == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_transient_failures_exhaust_after_three_attempts(self, gateway, sdk, request_):
        """Test that retries stop at the configured attempt count."""
        sdk.messages.create.side_effect = [server_error(), rate_limit_error(), httpx.ConnectError("boom")]

        with patch("shop_agent.clients.anthropic.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ExhaustedRetriesError) as exc_info:
                await gateway.send(request_)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, httpx.ConnectError)
        assert sdk.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_malformed_block_is_retried(self, gateway, sdk, request_):
        """Test that an undecodable tool_use block counts as a retryable failure."""
        sdk.messages.create.side_effect = [
            sdk_message([{"type": "tool_use", "id": "toolu_1", "name": "get_cart"}], stop_reason="tool_use"),
            sdk_message([{"type": "text", "text": "Hola"}]),
        ]

        with patch("shop_agent.clients.anthropic.asyncio.sleep", new_callable=AsyncMock):
            response = await gateway.send(request_)

        assert response.attempts == 2
        assert response.text_blocks[0].text == "Hola"

    def test_malformed_block_raises_on_decode(self, gateway):
        """Test that decoding a broken block raises instead of returning a partial response."""
        with pytest.raises(MalformedResponseError):
            gateway._convert_content_blocks([{"type": "text"}])


class TestTokenValidation:
    """Tests for inbound message token validation."""

    def test_validate_message_tokens_within_limit(self, gateway):
        """Test that messages within token limit pass validation."""
        gateway.tokenizer = Mock()
        gateway.tokenizer.encode.return_value = ["token"] * 500

        gateway.validate_message_tokens("Short message")

    def test_validate_message_tokens_exceeds_limit(self, gateway):
        """Test that messages exceeding token limit raise ValueError."""
        gateway.tokenizer = Mock()
        gateway.tokenizer.encode.return_value = ["token"] * 1500

        with pytest.raises(ValueError, match="Message exceeds token limit"):
            gateway.validate_message_tokens("Very long message")

    def test_validate_message_tokens_fallback_without_tokenizer(self, gateway):
        """Test the four-characters-per-token estimate when tiktoken is unavailable."""
        assert gateway.tokenizer is None

        gateway.validate_message_tokens("a" * 3000)
        with pytest.raises(ValueError, match="Message exceeds token limit"):
            gateway.validate_message_tokens("a" * 5000)
