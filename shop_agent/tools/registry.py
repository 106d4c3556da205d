"""Tools registry: the single source of truth for the tool catalog."""

from shop_agent.models.llm import LLMTool
from shop_agent.services.commerce import CommerceStore
from shop_agent.services.payments import PaymentLinkService
from shop_agent.tools.base import ToolDefinition
from shop_agent.tools.cart import (
    create_add_to_cart_tool,
    create_get_cart_tool,
    create_remove_from_cart_tool,
    create_update_cart_quantity_tool,
)
from shop_agent.tools.catalog import (
    create_get_product_availability_tool,
    create_search_products_tool,
    create_show_product_tool,
)
from shop_agent.tools.checkout import (
    create_apply_discount_tool,
    create_confirm_shipping_details_tool,
    create_create_payment_link_tool,
    create_get_shipping_options_tool,
    create_render_checkout_summary_tool,
    create_start_checkout_tool,
)
from shop_agent.tools.identification import create_identify_customer_tool
from shop_agent.tools.support import (
    create_escalate_to_human_tool,
    create_get_customer_history_tool,
    create_get_order_status_tool,
    create_get_store_info_tool,
)
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_DOMAINS: dict[str, tuple[str, ...]] = {
    "identification": ("identify_customer",),
    "catalog": ("search_products", "show_product", "get_product_availability"),
    "cart": ("add_to_cart", "get_cart", "remove_from_cart", "update_cart_quantity"),
    "checkout": (
        "start_checkout",
        "get_shipping_options",
        "apply_discount",
        "render_checkout_summary",
        "confirm_shipping_details",
        "create_payment_link",
    ),
    "support": ("get_store_info", "get_order_status", "get_customer_history", "escalate_to_human"),
}


class CatalogMismatchError(RuntimeError):
    """The registered tools do not match the declared catalog."""


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self, store: CommerceStore, payments: PaymentLinkService):
        """Initialize tools registry with service dependencies."""
        self.store = store
        self.payments = payments
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()
        self.verify_catalog()

    def _register_default_tools(self) -> None:
        """Register the default set of commerce tools."""
        tools = [
            create_identify_customer_tool(self.store),
            create_search_products_tool(self.store),
            create_show_product_tool(self.store),
            create_get_product_availability_tool(self.store),
            create_add_to_cart_tool(self.store),
            create_get_cart_tool(self.store),
            create_remove_from_cart_tool(self.store),
            create_update_cart_quantity_tool(self.store),
            create_start_checkout_tool(self.store),
            create_get_shipping_options_tool(),
            create_apply_discount_tool(self.store),
            create_render_checkout_summary_tool(self.store),
            create_confirm_shipping_details_tool(self.store),
            create_create_payment_link_tool(self.store, self.payments),
            create_get_store_info_tool(self.store),
            create_get_order_status_tool(self.store),
            create_get_customer_history_tool(self.store),
            create_escalate_to_human_tool(self.store),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        if tool.name in self._tools:
            raise CatalogMismatchError(f"Tool {tool.name} registered twice")
        self._tools[tool.name] = tool

    def verify_catalog(self) -> None:
        """Check that every declared tool has exactly one definition and vice versa."""
        declared = {name for names in TOOL_DOMAINS.values() for name in names}
        registered = set(self._tools)

        missing = declared - registered
        undeclared = registered - declared
        if missing or undeclared:
            raise CatalogMismatchError(
                f"Tool catalog out of sync (missing: {sorted(missing)}, undeclared: {sorted(undeclared)})"
            )
        logger.debug(f"Tool catalog verified: {len(registered)} tools")

    def get_catalog(self) -> list[LLMTool]:
        """Get the catalog entries sent to the model."""
        return [tool.as_llm_tool() for tool in self._tools.values()]

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


_tools_registry: ToolsRegistry | None = None


def get_tools_registry(
    store: CommerceStore | None = None,
    payments: PaymentLinkService | None = None,
) -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        if not store or not payments:
            raise ValueError("Must provide services for initial registry creation")

        _tools_registry = ToolsRegistry(store, payments)

    return _tools_registry
