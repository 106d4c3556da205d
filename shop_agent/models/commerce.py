"""Commerce backend data models (tenants, catalog, customers, carts, orders)."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class PersonalitySettings(BaseModel):
    """Tone and free-form instructions configured for an agent."""

    tone: str | None = None
    instructions: str | None = None


class AgentConfiguration(BaseModel):
    """Per-agent configuration block."""

    greeting: str | None = None
    tone: str | None = None
    personality: PersonalitySettings | None = None


class Agent(BaseModel):
    """Per-tenant assistant persona, or a human agent for escalations."""

    id: str
    organization_id: str
    name: str
    system_prompt: str | None = None
    type: Literal["bot", "human"] = "bot"
    status: str = "available"
    configuration: AgentConfiguration = Field(default_factory=AgentConfiguration)

    @property
    def custom_instructions(self) -> str | None:
        if self.configuration.personality:
            return self.configuration.personality.instructions
        return None

    @property
    def tone(self) -> str | None:
        if self.configuration.personality and self.configuration.personality.tone:
            return self.configuration.personality.tone
        return self.configuration.tone


class Organization(BaseModel):
    """A tenant (store)."""

    id: str
    name: str
    slug: str | None = None
    contact_email: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class ProductVariant(BaseModel):
    """A variant dimension such as size or color and its allowed values."""

    type: str
    values: list[str]


class PriceTier(BaseModel):
    """Quantity-based unit price."""

    min_quantity: int
    max_quantity: int | None = None
    unit_price: float
    label: str | None = None


class ConfigurableOption(BaseModel):
    """A customization the customer must (or may) provide for a configurable product."""

    name: str
    type: Literal["text", "select", "number", "color", "image"]
    required: bool = False
    placeholder: str | None = None
    choices: list[str] | None = None
    min: float | None = None
    max: float | None = None


class Product(BaseModel):
    """Catalog product."""

    id: str
    organization_id: str
    name: str
    description: str | None = None
    price: float
    stock: int = 0
    sku: str | None = None
    categories: list[str] = Field(default_factory=list)
    image_url: str | None = None
    images: list[str] = Field(default_factory=list)
    variants: list[ProductVariant] = Field(default_factory=list)
    is_active: bool = True
    is_configurable: bool = False
    configurable_options: list[ConfigurableOption] = Field(default_factory=list)
    has_quantity_pricing: bool = False
    price_tiers: list[PriceTier] = Field(default_factory=list)
    minimum_quantity: int | None = None

    @property
    def primary_image(self) -> str | None:
        return self.image_url or (self.images[0] if self.images else None)

    def variant_values(self) -> list[str]:
        """All selectable variant values across every variant dimension."""
        return [value for variant in self.variants for value in variant.values]


class ShippingInfo(BaseModel):
    """Shipping and billing details collected during conversational checkout."""

    full_name: str
    phone: str
    address: str
    city: str
    document_number: str
    document_type: str = "CC"
    email: str | None = None
    state: str | None = None


class Customer(BaseModel):
    """A store customer."""

    id: str
    organization_id: str
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    total_orders: int = 0
    total_spent: float = 0
    last_shipping_info: ShippingInfo | None = None
    last_interaction_at: datetime | None = None


class LineItem(BaseModel):
    """A product line inside a cart or an order."""

    product_id: str
    name: str
    price: float
    quantity: int
    image_url: str | None = None
    variant: str | None = None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Order(BaseModel):
    """A placed order."""

    id: str
    organization_id: str
    customer_id: str | None = None
    conversation_id: str | None = None
    status: str = "pending"
    items: list[LineItem] = Field(default_factory=list)
    total: float = 0
    shipping_cost: float = 0
    payment_method: str | None = None
    payment_url: str | None = None
    customer_email: str | None = None
    shipping: ShippingInfo | None = None
    created_at: datetime = Field(default_factory=_now)


class Cart(BaseModel):
    """The active cart of a conversation."""

    id: str
    organization_id: str
    conversation_id: str
    customer_id: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    status: str = "active"
    updated_at: datetime = Field(default_factory=_now)

    @property
    def subtotal(self) -> float:
        return sum(item.subtotal for item in self.items)

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


class Discount(BaseModel):
    """A discount code."""

    id: str
    organization_id: str
    code: str
    type: Literal["percentage", "fixed"]
    value: float
    is_active: bool = True
    valid_until: datetime | None = None
    max_uses: int | None = None
    used_count: int = 0
    min_purchase: float | None = None


class Conversation(BaseModel):
    """A chat between a customer and an agent."""

    id: str
    organization_id: str
    agent_id: str | None = None
    customer_id: str | None = None
    status: str = "active"
    assigned_agent_id: str | None = None
    shipping_details: ShippingInfo | None = None


class StoredMessage(BaseModel):
    """A persisted conversation message."""

    id: str
    conversation_id: str
    sender_type: Literal["user", "bot"]
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
