"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shop_agent import __version__
from shop_agent.api.endpoints import router
from shop_agent.clients.anthropic import get_anthropic_client
from shop_agent.services.conversation import get_conversation_service
from shop_agent.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Fail fast on a missing API key or an inconsistent tool catalog
    client = get_anthropic_client()
    service = get_conversation_service()
    logger.info(f"Shop assistant ready: model {client.model}, {len(service.registry.get_tool_names())} tools")
    yield


app = FastAPI(
    title="Shop Agent",
    description=(
        "Conversational commerce assistant: answers shoppers in chat, searches the catalog, "
        "manages the cart and walks customers through checkout."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Chat",
            "description": "Run a conversational turn for a store's assistant and return client actions.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Widget is embedded on tenant storefronts
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("shop_agent.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
