"""API endpoints for the shop assistant."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException

from shop_agent import __version__
from shop_agent.models.conversation import ChatRequest, ChatResponse, HealthResponse
from shop_agent.services.conversation import ConversationService, get_conversation_service
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def handle_chat(
    request: ChatRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ChatResponse:
    """Run one conversational turn for a customer message.

    The reply carries the assistant text, the client actions to render
    (product cards, cart updates, checkout summaries) and turn metadata.
    """
    logger.info(f"Chat message for conversation {request.conversation_id}: {request.message[:50]}...")

    try:
        service.llm_service.gateway.validate_message_tokens(request.message)
    except ValueError as e:
        logger.warning(f"Message validation error for conversation {request.conversation_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        await service.record_inbound_message(request)
    except Exception as e:
        logger.error(f"Failed to store inbound message for {request.conversation_id}: {e}", exc_info=True)

    response = await service.process_message(request)
    logger.info(
        f"Reply for conversation {request.conversation_id} in {response.metadata.latency_ms}ms, "
        f"actions: {[action.type for action in response.actions]}"
    )
    return response


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
