"""Shared fixtures for the test-suite."""

from unittest.mock import patch

import pytest

from shop_agent.services.commerce import InMemoryCommerceStore
from shop_agent.services.payments import MockPaymentLinkService
from shop_agent.services.tool_executor import ToolExecutor
from shop_agent.tools.base import ToolContext
from shop_agent.tools.registry import ToolsRegistry


@pytest.fixture(autouse=True)
def no_tokenizer_download():
    """Keep tests offline: tiktoken would fetch its encoding on first use."""
    with patch("shop_agent.clients.anthropic.tiktoken.encoding_for_model", side_effect=RuntimeError("offline")):
        yield


@pytest.fixture
def store():
    return InMemoryCommerceStore()


@pytest.fixture
def registry(store):
    return ToolsRegistry(store, MockPaymentLinkService())


@pytest.fixture
def executor(registry):
    return ToolExecutor(registry)


@pytest.fixture
def tool_context():
    return ToolContext(conversation_id="conv_demo", tenant_id="org_demo")
