"""LLM service: the orchestration loop between the model and the tool executor."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from shop_agent.clients.anthropic import get_anthropic_client
from shop_agent.models.conversation import Action
from shop_agent.models.llm import (
    AgentLoopResult,
    ContentBlock,
    LLMMessage,
    LLMTool,
    LLMUsage,
    ModelRequest,
    ModelResponse,
    ToolResultBlock,
)
from shop_agent.services.tool_executor import ToolExecutor
from shop_agent.tools.base import ToolContext
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ModelGateway(Protocol):
    """Anything that can turn a model request into a decoded response."""

    @property
    def model(self) -> str: ...

    async def send(self, request: ModelRequest) -> ModelResponse: ...

    def validate_message_tokens(self, message: str) -> None: ...


@dataclass
class AgentLoopConfig:
    """Limits for one conversational turn."""

    max_iterations: int = 5
    history_limit: int = 10
    order_history_limit: int = 5

    @classmethod
    def from_env(cls) -> "AgentLoopConfig":
        return cls(
            max_iterations=int(os.getenv("AGENT_MAX_ITERATIONS", "5")),
            history_limit=int(os.getenv("AGENT_HISTORY_LIMIT", "10")),
            order_history_limit=int(os.getenv("AGENT_ORDER_HISTORY_LIMIT", "5")),
        )


class LoopState(Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


def _show_product_id(action: Action) -> str | None:
    if action.type != "show_product":
        return None
    product = action.data.get("product") or {}
    return product.get("id")


class LLMService:
    """Drives a turn: model call, tool dispatch, tool results back to the model, repeat."""

    def __init__(
        self,
        executor: ToolExecutor,
        gateway: ModelGateway | None = None,
        config: AgentLoopConfig | None = None,
    ):
        """Initialize LLM service.

        Args:
            executor: Tool executor bound to the tools registry
            gateway: Model gateway (defaults to the global Anthropic client)
            config: Loop limits (defaults to environment configuration)
        """
        self.executor = executor
        self.gateway = gateway or get_anthropic_client()
        self.config = config or AgentLoopConfig.from_env()

    async def execute_agent_loop(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        tools: list[LLMTool],
        context: ToolContext,
        initial_actions: list[Action] | None = None,
    ) -> AgentLoopResult:
        """Execute the agent loop until the model stops calling tools or the ceiling is hit.

        Args:
            system_prompt: Fully assembled system prompt
            messages: Alternating history ending with the inbound user message
            tools: Tool catalog offered to the model
            context: Tenant, conversation and customer the tools act for
            initial_actions: Actions already decided before the first model call

        Returns:
            Accumulated text, ordered actions and turn metadata

        Raises:
            ModelGatewayError: The gateway gave up (auth failure or exhausted retries)
        """
        max_iterations = self.config.max_iterations
        logger.info(
            f"Starting agent loop for conversation {context.conversation_id} with {len(messages)} messages, "
            f"{len(tools)} tools, max_iterations: {max_iterations}"
        )

        current_messages = list(messages)
        text_parts: list[str] = []
        actions: list[Action] = []
        shown_products: set[str] = set()
        tools_used: list[str] = []
        usage = LLMUsage()
        model = self.gateway.model
        stop_reason: str | None = None
        iterations = 0

        def add_action(action: Action) -> None:
            product_id = _show_product_id(action)
            if product_id:
                if product_id in shown_products:
                    return
                shown_products.add(product_id)
            actions.append(action)

        for action in initial_actions or []:
            add_action(action)

        state = LoopState.AWAITING_MODEL
        response: ModelResponse | None = None

        while state is not LoopState.DONE:
            if state is LoopState.AWAITING_MODEL:
                iterations += 1
                logger.debug(f"Agent loop iteration {iterations}/{max_iterations}")

                response = await self.gateway.send(
                    ModelRequest(system_prompt=system_prompt, messages=list(current_messages), tool_catalog=tools)
                )
                usage.add(response.usage)
                model = response.model
                stop_reason = response.stop_reason

                text_parts.extend(block.text for block in response.text_blocks if block.text.strip())

                if response.tool_use_blocks:
                    state = LoopState.EXECUTING_TOOLS
                else:
                    state = LoopState.DONE

            elif state is LoopState.EXECUTING_TOOLS:
                tool_use_blocks = response.tool_use_blocks
                logger.info(f"LLM wants to use {len(tool_use_blocks)} tools")
                current_messages.append(LLMMessage(role="assistant", content=response.content))

                tool_results: list[ContentBlock] = []
                for tool_block in tool_use_blocks:
                    tools_used.append(tool_block.name)
                    result = await self.executor.execute(tool_block.name, tool_block.input, context)
                    tool_results.append(
                        ToolResultBlock(
                            tool_use_id=tool_block.id,
                            content=result.to_content(),
                            is_error=not result.success,
                        )
                    )

                    if result.success and result.data and self.executor.is_display_tool(tool_block.name):
                        add_action(Action(type=tool_block.name, data=result.data))

                current_messages.append(LLMMessage(role="user", content=tool_results))

                if iterations >= max_iterations:
                    logger.warning(f"Agent loop reached max iterations ({max_iterations})")
                    stop_reason = "max_iterations"
                    state = LoopState.DONE
                else:
                    state = LoopState.AWAITING_MODEL

        logger.info(f"Agent loop completed in {iterations} iterations, tools used: {tools_used}")
        return AgentLoopResult(
            text="\n".join(text_parts),
            actions=actions,
            iterations=iterations,
            tools_used=tools_used,
            usage=usage,
            messages=current_messages,
            model=model,
            stop_reason=stop_reason,
        )
