"""Conversation service: loads business state, runs the agent loop and records the reply."""

import time

from shop_agent.clients.anthropic import ModelGatewayError
from shop_agent.models.commerce import Product
from shop_agent.models.conversation import Action, ChatRequest, ChatResponse, ResponseMetadata, TokensUsed
from shop_agent.models.llm import AgentLoopResult
from shop_agent.services.commerce import CommerceStore, get_commerce_store
from shop_agent.services.context import (
    append_user_message,
    build_cart_context,
    build_conversation_history,
    build_customer_context,
    build_system_prompt,
    without_stored_inbound,
)
from shop_agent.services.llm import AgentLoopConfig, LLMService
from shop_agent.services.payments import MockPaymentLinkService
from shop_agent.services.tool_executor import ToolExecutor
from shop_agent.tools.base import ToolContext
from shop_agent.tools.catalog import product_card
from shop_agent.tools.registry import ToolsRegistry, get_tools_registry
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

FALLBACK_RESPONSE = "Lo siento, tuve un problema procesando tu mensaje. ¿Podrías intentarlo de nuevo?"


class ConversationService:
    """Service for handling one conversational turn end to end."""

    def __init__(self, store: CommerceStore, registry: ToolsRegistry, llm_service: LLMService):
        self.store = store
        self.registry = registry
        self.llm_service = llm_service

    @property
    def config(self) -> AgentLoopConfig:
        return self.llm_service.config

    async def record_inbound_message(self, request: ChatRequest) -> None:
        """Persist the customer's message before the turn runs."""
        await self.store.insert_message(request.tenant_id, request.conversation_id, "user", request.message, {})

    async def process_message(self, request: ChatRequest) -> ChatResponse:
        """Process a customer message and return the assistant's reply.

        Args:
            request: Inbound message with its tenant, agent and conversation

        Returns:
            Reply text, client actions and turn metadata. Unrecoverable failures
            return a fixed apology instead of raising.

        Raises:
            ValueError: If message exceeds token limit
        """
        start = time.perf_counter()
        logger.info(f"Processing message for conversation {request.conversation_id} (tenant {request.tenant_id})")

        self.llm_service.gateway.validate_message_tokens(request.message)

        try:
            result = await self._run_turn(request)
        except ModelGatewayError as e:
            logger.error(f"Model gateway failed for conversation {request.conversation_id}: {e}", exc_info=True)
            return self._fallback_response(start)
        except LookupError as e:
            logger.error(f"Cannot process conversation {request.conversation_id}: {e}")
            return self._fallback_response(start)
        except Exception as e:
            logger.error(f"Turn processing failed for conversation {request.conversation_id}: {e}", exc_info=True)
            return self._fallback_response(start)

        latency_ms = int((time.perf_counter() - start) * 1000)
        tokens_used = TokensUsed(input=result.usage.input_tokens, output=result.usage.output_tokens)

        if result.usage.input_tokens:
            logger.info(
                f"Token usage - Input: {result.usage.input_tokens}, "
                f"Output: {result.usage.output_tokens}, "
                f"Cache hits: {result.usage.cache_read_input_tokens}"
            )

        await self._save_reply(request, result, latency_ms, tokens_used)

        return ChatResponse(
            response=result.text,
            actions=result.actions,
            metadata=ResponseMetadata(
                model=result.model,
                latency_ms=latency_ms,
                tools_used=result.tools_used,
                iterations=result.iterations,
                tokens_used=tokens_used,
            ),
        )

    async def _run_turn(self, request: ChatRequest) -> AgentLoopResult:
        tenant_id = request.tenant_id

        agent = await self.store.get_agent(request.agent_id)
        if agent is None or agent.organization_id != tenant_id:
            raise LookupError(f"agent {request.agent_id} not found for tenant {tenant_id}")

        organization = await self.store.get_organization(tenant_id)
        if organization is None:
            raise LookupError(f"tenant {tenant_id} not found")

        conversation = await self.store.get_conversation(tenant_id, request.conversation_id)
        if conversation is None:
            raise LookupError(f"conversation {request.conversation_id} not found for tenant {tenant_id}")

        product_count = await self.store.count_active_products(tenant_id)

        current_product: Product | None = None
        if request.current_product_id:
            current_product = await self.store.get_product(tenant_id, request.current_product_id, active_only=True)
            if current_product is None:
                logger.warning(f"Current product {request.current_product_id} not found in tenant {tenant_id}")

        recent = await self.store.get_recent_messages(
            tenant_id, request.conversation_id, limit=self.config.history_limit
        )
        stored = without_stored_inbound(list(reversed(recent)), request.message)
        history = build_conversation_history(stored)

        customer_id = request.customer_id or conversation.customer_id

        customer = await self.store.get_customer(tenant_id, customer_id) if customer_id else None
        orders = (
            await self.store.get_recent_orders(tenant_id, customer.id, limit=self.config.order_history_limit)
            if customer
            else []
        )
        cart = await self.store.get_active_cart(tenant_id, request.conversation_id)

        system_prompt = "\n\n".join(
            [
                build_system_prompt(agent, organization.name, product_count, customer, current_product),
                build_customer_context(customer, orders),
                build_cart_context(cart),
            ]
        )
        messages = append_user_message(history, request.message)

        initial_actions = []
        if current_product:
            initial_actions.append(Action(type="show_product", data={"product": product_card(current_product)}))

        context = ToolContext(
            conversation_id=request.conversation_id,
            tenant_id=tenant_id,
            customer_id=customer.id if customer else None,
        )
        return await self.llm_service.execute_agent_loop(
            system_prompt=system_prompt,
            messages=messages,
            tools=self.registry.get_catalog(),
            context=context,
            initial_actions=initial_actions,
        )

    async def _save_reply(
        self, request: ChatRequest, result: AgentLoopResult, latency_ms: int, tokens_used: TokensUsed
    ) -> None:
        metadata = {
            "model": result.model,
            "tools_used": result.tools_used,
            "latency_ms": latency_ms,
            "iterations": result.iterations,
            "tokens": tokens_used.model_dump(),
        }
        try:
            await self.store.insert_message(request.tenant_id, request.conversation_id, "bot", result.text, metadata)
        except Exception as e:
            logger.error(f"Failed to save reply for conversation {request.conversation_id}: {e}", exc_info=True)

    def _fallback_response(self, start: float) -> ChatResponse:
        return ChatResponse(
            response=FALLBACK_RESPONSE,
            actions=[],
            metadata=ResponseMetadata(
                model=self.llm_service.gateway.model,
                latency_ms=int((time.perf_counter() - start) * 1000),
            ),
        )


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create the conversation service wired to the default collaborators."""
    global _conversation_service
    if _conversation_service is None:
        store = get_commerce_store()
        registry = get_tools_registry(store, MockPaymentLinkService())
        _conversation_service = ConversationService(store, registry, LLMService(ToolExecutor(registry)))
    return _conversation_service
