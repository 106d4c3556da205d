"""Tests for API endpoints."""

import pytest
from fakes import ScriptedGateway, text_response, tool_response
from fastapi.testclient import TestClient

from shop_agent.clients.anthropic import ExhaustedRetriesError
from shop_agent.main import app
from shop_agent.services.conversation import FALLBACK_RESPONSE, ConversationService, get_conversation_service
from shop_agent.services.llm import AgentLoopConfig, LLMService

client = TestClient(app)

CHAT = {"message": "hola", "conversation_id": "conv_demo", "tenant_id": "org_demo", "agent_id": "agent_demo"}


@pytest.fixture
def use_service(store, registry, executor):
    """Install a conversation service driven by scripted model responses."""

    def install(responses):
        gateway = ScriptedGateway(responses)
        service = ConversationService(store, registry, LLMService(executor, gateway=gateway, config=AgentLoopConfig()))
        app.dependency_overrides[get_conversation_service] = lambda: service
        return gateway

    yield install
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data


class TestChatEndpoint:
    """Tests for the chat endpoint."""

    def test_chat_response_structure(self, use_service):
        """Test the reply, actions and metadata shape."""
        use_service([text_response("¡Hola! ¿Qué estás buscando?")])

        response = client.post("/chat", json=CHAT)

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "¡Hola! ¿Qué estás buscando?"
        assert data["actions"] == []
        assert data["metadata"]["model"] == "claude-test"
        assert isinstance(data["metadata"]["latency_ms"], int)
        assert data["metadata"]["tools_used"] == []

    def test_chat_returns_actions(self, use_service):
        """Test that display tool results reach the client."""
        use_service(
            [
                tool_response(("toolu_1", "show_product", {"product_id": "prod_mug"})),
                text_response("Este es nuestro mug."),
            ]
        )

        data = client.post("/chat", json={**CHAT, "message": "muéstrame el mug"}).json()

        assert data["actions"][0]["type"] == "show_product"
        assert data["actions"][0]["data"]["product"]["id"] == "prod_mug"
        assert data["metadata"]["tools_used"] == ["show_product"]

    def test_chat_stores_both_sides_once(self, use_service, store):
        """Test that the inbound message and the reply are each stored once."""
        gateway = use_service([text_response("¡Hola!")])

        client.post("/chat", json=CHAT)

        assert [m.sender_type for m in store.messages["conv_demo"]] == ["user", "bot"]
        assert [m.role for m in gateway.requests[0].messages] == ["user"]

    def test_chat_fallback_on_gateway_failure(self, use_service):
        """Test that model failures return the apology with 200."""
        use_service([ExhaustedRetriesError(3)])

        response = client.post("/chat", json=CHAT)

        assert response.status_code == 200
        assert response.json()["response"] == FALLBACK_RESPONSE

    def test_chat_message_too_long(self, use_service, store):
        """Test that oversized messages are rejected with 400 and nothing is stored."""
        use_service([text_response("x")])

        response = client.post("/chat", json={**CHAT, "message": "a" * 9000})

        assert response.status_code == 400
        assert store.messages["conv_demo"] == []

    def test_chat_missing_fields(self, use_service):
        """Test that tenant, agent and conversation are required."""
        use_service([])

        response = client.post("/chat", json={"message": "hola"})

        assert response.status_code == 422

    def test_chat_empty_message(self, use_service):
        """Test that an empty message is a validation error."""
        use_service([])

        response = client.post("/chat", json={**CHAT, "message": ""})

        assert response.status_code == 422


class TestAPIDocumentation:
    """Tests for API documentation endpoints."""

    def test_openapi_json_available(self):
        """Test that OpenAPI JSON specification is available."""
        response = client.get("/openapi.json")
        assert response.status_code == 200
        assert "/chat" in response.json()["paths"]

    def test_swagger_ui_available(self):
        """Test that Swagger UI is available."""
        response = client.get("/docs")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
