"""Commerce backend interface and in-memory implementation."""

from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from cuid2 import cuid_wrapper

from shop_agent.models.commerce import (
    Agent,
    AgentConfiguration,
    Cart,
    ConfigurableOption,
    Conversation,
    Customer,
    Discount,
    LineItem,
    Order,
    Organization,
    PersonalitySettings,
    PriceTier,
    Product,
    ProductVariant,
    ShippingInfo,
    StoredMessage,
)
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class CommerceStore(Protocol):
    """Interface to the tenant-scoped commerce data store.

    Every lookup takes the organization (tenant) id; records belonging to
    another tenant are reported as missing.
    """

    async def get_agent(self, agent_id: str) -> Agent | None: ...

    async def find_available_human_agent(self, organization_id: str) -> Agent | None: ...

    async def get_organization(self, organization_id: str) -> Organization | None: ...

    async def count_active_products(self, organization_id: str) -> int: ...

    async def get_product(self, organization_id: str, product_id: str, active_only: bool = True) -> Product | None: ...

    async def search_products(
        self,
        organization_id: str,
        query: str,
        *,
        category: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        limit: int = 5,
    ) -> list[Product]:
        """Search active, in-stock products by name, description or category."""
        ...

    async def get_conversation(self, organization_id: str, conversation_id: str) -> Conversation | None: ...

    async def link_customer(self, organization_id: str, conversation_id: str, customer_id: str) -> bool: ...

    async def update_conversation_status(
        self, organization_id: str, conversation_id: str, status: str, assigned_agent_id: str | None = None
    ) -> bool: ...

    async def save_shipping_details(self, organization_id: str, conversation_id: str, details: ShippingInfo) -> bool:
        """Attach confirmed shipping details to the conversation.

        Returns False when the conversation does not belong to the organization.
        """
        ...

    async def get_recent_messages(
        self, organization_id: str, conversation_id: str, limit: int = 10
    ) -> list[StoredMessage]:
        """Return the latest messages, newest first."""
        ...

    async def insert_message(
        self,
        organization_id: str,
        conversation_id: str,
        sender_type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        """Append a message to the conversation.

        Raises:
            LookupError: If the conversation does not belong to the organization
        """
        ...

    async def get_customer(self, organization_id: str, customer_id: str) -> Customer | None: ...

    async def find_customer(
        self, organization_id: str, *, email: str | None = None, phone: str | None = None
    ) -> Customer | None: ...

    async def create_customer(
        self, organization_id: str, full_name: str | None, email: str | None, phone: str | None
    ) -> Customer: ...

    async def record_customer_interaction(self, organization_id: str, customer_id: str) -> None: ...

    async def save_customer_shipping_info(self, organization_id: str, customer_id: str, info: ShippingInfo) -> None: ...

    async def get_recent_orders(self, organization_id: str, customer_id: str, limit: int = 5) -> list[Order]:
        """Return the customer's latest orders, newest first."""
        ...

    async def get_order(self, organization_id: str, order_id: str) -> Order | None: ...

    async def find_latest_order_by_email(self, organization_id: str, email: str) -> Order | None: ...

    async def create_order(
        self,
        organization_id: str,
        conversation_id: str,
        customer_id: str | None,
        items: list[LineItem],
        payment_method: str,
        shipping: ShippingInfo,
    ) -> Order: ...

    async def set_order_payment_url(self, organization_id: str, order_id: str, payment_url: str) -> None: ...

    async def set_order_status(self, organization_id: str, order_id: str, status: str) -> None: ...

    async def get_active_cart(self, organization_id: str, conversation_id: str) -> Cart | None: ...

    async def save_cart_items(self, organization_id: str, cart_id: str, items: list[LineItem]) -> Cart: ...

    async def get_discount(self, organization_id: str, code: str) -> Discount | None: ...


class InMemoryCommerceStore:
    """In-memory commerce store.

    Holds demo data for local development and backs the test-suite. Records
    are returned as copies so callers cannot mutate stored state by accident.
    """

    def __init__(self, seed: bool = True):
        self.organizations: dict[str, Organization] = {}
        self.agents: dict[str, Agent] = {}
        self.products: dict[str, Product] = {}
        self.customers: dict[str, Customer] = {}
        self.orders: dict[str, Order] = {}
        self.carts: dict[str, Cart] = {}
        self.discounts: dict[str, Discount] = {}
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, list[StoredMessage]] = {}

        if seed:
            self._create_seed_data()

    # Registration helpers

    def add_organization(self, organization: Organization) -> Organization:
        self.organizations[organization.id] = organization
        return organization

    def add_agent(self, agent: Agent) -> Agent:
        self.agents[agent.id] = agent
        return agent

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    def add_order(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    def add_cart(self, cart: Cart) -> Cart:
        self.carts[cart.id] = cart
        return cart

    def add_discount(self, discount: Discount) -> Discount:
        self.discounts[discount.id] = discount
        return discount

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        self.messages.setdefault(conversation.id, [])
        return conversation

    # Agents and organizations

    async def get_agent(self, agent_id: str) -> Agent | None:
        agent = self.agents.get(agent_id)
        return agent.model_copy(deep=True) if agent else None

    async def find_available_human_agent(self, organization_id: str) -> Agent | None:
        for agent in self.agents.values():
            if agent.organization_id == organization_id and agent.type == "human" and agent.status == "available":
                return agent.model_copy(deep=True)
        return None

    async def get_organization(self, organization_id: str) -> Organization | None:
        organization = self.organizations.get(organization_id)
        return organization.model_copy(deep=True) if organization else None

    # Catalog

    async def count_active_products(self, organization_id: str) -> int:
        return sum(1 for p in self.products.values() if p.organization_id == organization_id and p.is_active)

    async def get_product(self, organization_id: str, product_id: str, active_only: bool = True) -> Product | None:
        product = self.products.get(product_id)
        if not product or product.organization_id != organization_id:
            return None
        if active_only and not product.is_active:
            return None
        return product.model_copy(deep=True)

    async def search_products(
        self,
        organization_id: str,
        query: str,
        *,
        category: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        limit: int = 5,
    ) -> list[Product]:
        needle = query.strip().lower()
        results: list[Product] = []

        for product in self.products.values():
            if product.organization_id != organization_id or not product.is_active or product.stock <= 0:
                continue
            if min_price is not None and product.price < min_price:
                continue
            if max_price is not None and product.price > max_price:
                continue
            if category and category.lower() not in (c.lower() for c in product.categories):
                continue

            haystack = " ".join([product.name, product.description or "", *product.categories]).lower()
            if needle and needle not in haystack:
                continue

            results.append(product.model_copy(deep=True))
            if len(results) >= limit:
                break

        return results

    # Conversations and messages

    def _owned_conversation(self, organization_id: str, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        if not conversation or conversation.organization_id != organization_id:
            return None
        return conversation

    async def get_conversation(self, organization_id: str, conversation_id: str) -> Conversation | None:
        conversation = self._owned_conversation(organization_id, conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def link_customer(self, organization_id: str, conversation_id: str, customer_id: str) -> bool:
        conversation = self._owned_conversation(organization_id, conversation_id)
        if not conversation:
            return False
        conversation.customer_id = customer_id
        return True

    async def update_conversation_status(
        self, organization_id: str, conversation_id: str, status: str, assigned_agent_id: str | None = None
    ) -> bool:
        conversation = self._owned_conversation(organization_id, conversation_id)
        if not conversation:
            return False
        conversation.status = status
        if assigned_agent_id:
            conversation.assigned_agent_id = assigned_agent_id
        return True

    async def save_shipping_details(self, organization_id: str, conversation_id: str, details: ShippingInfo) -> bool:
        conversation = self._owned_conversation(organization_id, conversation_id)
        if not conversation:
            return False
        conversation.shipping_details = details.model_copy()
        return True

    async def get_recent_messages(
        self, organization_id: str, conversation_id: str, limit: int = 10
    ) -> list[StoredMessage]:
        if not self._owned_conversation(organization_id, conversation_id):
            return []
        history = self.messages.get(conversation_id, [])
        return [message.model_copy() for message in reversed(history[-limit:])]

    async def insert_message(
        self,
        organization_id: str,
        conversation_id: str,
        sender_type: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredMessage:
        if not self._owned_conversation(organization_id, conversation_id):
            raise LookupError(f"Conversation {conversation_id} not found for organization {organization_id}")

        message = StoredMessage(
            id=cuid(),
            conversation_id=conversation_id,
            sender_type=sender_type,
            content=content,
            metadata=metadata or {},
        )
        self.messages.setdefault(conversation_id, []).append(message)
        return message.model_copy()

    # Customers

    async def get_customer(self, organization_id: str, customer_id: str) -> Customer | None:
        customer = self.customers.get(customer_id)
        if not customer or customer.organization_id != organization_id:
            return None
        return customer.model_copy(deep=True)

    async def find_customer(
        self, organization_id: str, *, email: str | None = None, phone: str | None = None
    ) -> Customer | None:
        for customer in self.customers.values():
            if customer.organization_id != organization_id:
                continue
            if email and customer.email and customer.email.lower() == email.lower():
                return customer.model_copy(deep=True)
            if not email and phone and customer.phone == phone:
                return customer.model_copy(deep=True)
        return None

    async def create_customer(
        self, organization_id: str, full_name: str | None, email: str | None, phone: str | None
    ) -> Customer:
        customer = Customer(
            id=cuid(),
            organization_id=organization_id,
            full_name=full_name,
            email=email,
            phone=phone,
            last_interaction_at=datetime.now(UTC),
        )
        self.customers[customer.id] = customer
        logger.info(f"Created customer {customer.id} for organization {organization_id}")
        return customer.model_copy(deep=True)

    async def record_customer_interaction(self, organization_id: str, customer_id: str) -> None:
        customer = self.customers.get(customer_id)
        if customer and customer.organization_id == organization_id:
            customer.last_interaction_at = datetime.now(UTC)

    async def save_customer_shipping_info(self, organization_id: str, customer_id: str, info: ShippingInfo) -> None:
        customer = self.customers.get(customer_id)
        if customer and customer.organization_id == organization_id:
            customer.last_shipping_info = info.model_copy()

    # Orders

    async def get_recent_orders(self, organization_id: str, customer_id: str, limit: int = 5) -> list[Order]:
        orders = [
            order
            for order in self.orders.values()
            if order.organization_id == organization_id and order.customer_id == customer_id
        ]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return [order.model_copy(deep=True) for order in orders[:limit]]

    async def get_order(self, organization_id: str, order_id: str) -> Order | None:
        order = self.orders.get(order_id)
        if not order or order.organization_id != organization_id:
            return None
        return order.model_copy(deep=True)

    async def find_latest_order_by_email(self, organization_id: str, email: str) -> Order | None:
        matches = [
            order
            for order in self.orders.values()
            if order.organization_id == organization_id
            and order.customer_email
            and order.customer_email.lower() == email.lower()
        ]
        if not matches:
            return None
        return max(matches, key=lambda order: order.created_at).model_copy(deep=True)

    async def create_order(
        self,
        organization_id: str,
        conversation_id: str,
        customer_id: str | None,
        items: list[LineItem],
        payment_method: str,
        shipping: ShippingInfo,
    ) -> Order:
        order = Order(
            id=cuid(),
            organization_id=organization_id,
            customer_id=customer_id,
            conversation_id=conversation_id,
            items=[item.model_copy() for item in items],
            total=sum(item.subtotal for item in items),
            payment_method=payment_method,
            customer_email=shipping.email,
            shipping=shipping.model_copy(),
        )
        self.orders[order.id] = order
        logger.info(f"Created order {order.id} ({payment_method}) for conversation {conversation_id}")
        return order.model_copy(deep=True)

    async def set_order_payment_url(self, organization_id: str, order_id: str, payment_url: str) -> None:
        order = self.orders.get(order_id)
        if order and order.organization_id == organization_id:
            order.payment_url = payment_url

    async def set_order_status(self, organization_id: str, order_id: str, status: str) -> None:
        order = self.orders.get(order_id)
        if order and order.organization_id == organization_id:
            order.status = status

    # Carts and discounts

    async def get_active_cart(self, organization_id: str, conversation_id: str) -> Cart | None:
        for cart in self.carts.values():
            if (
                cart.organization_id == organization_id
                and cart.conversation_id == conversation_id
                and cart.status == "active"
            ):
                return cart.model_copy(deep=True)
        return None

    async def save_cart_items(self, organization_id: str, cart_id: str, items: list[LineItem]) -> Cart:
        cart = self.carts.get(cart_id)
        if not cart or cart.organization_id != organization_id:
            raise LookupError(f"Cart {cart_id} not found for organization {organization_id}")
        cart.items = [item.model_copy() for item in items]
        cart.updated_at = datetime.now(UTC)
        return cart.model_copy(deep=True)

    async def get_discount(self, organization_id: str, code: str) -> Discount | None:
        for discount in self.discounts.values():
            if discount.organization_id == organization_id and discount.code == code.upper() and discount.is_active:
                return discount.model_copy(deep=True)
        return None

    def _create_seed_data(self) -> None:
        """Create a demo store for local development."""
        now = datetime.now(UTC)

        self.add_organization(
            Organization(id="org_demo", name="Tienda Demo", slug="demo", contact_email="hola@tiendademo.co")
        )
        self.add_agent(
            Agent(
                id="agent_demo",
                organization_id="org_demo",
                name="Sofía",
                configuration=AgentConfiguration(personality=PersonalitySettings(tone="cercana y entusiasta")),
            )
        )
        self.add_agent(Agent(id="agent_human", organization_id="org_demo", name="Laura", type="human"))

        self.add_product(
            Product(
                id="prod_tshirt",
                organization_id="org_demo",
                name="Camiseta Básica",
                description="Camiseta de algodón peinado",
                price=45000,
                stock=25,
                categories=["ropa", "camisetas"],
                image_url="https://cdn.tiendademo.co/camiseta.jpg",
                variants=[
                    ProductVariant(type="talla", values=["S", "M", "L"]),
                    ProductVariant(type="color", values=["negro", "blanco"]),
                ],
            )
        )
        self.add_product(
            Product(
                id="prod_mug",
                organization_id="org_demo",
                name="Mug Personalizado",
                description="Mug de cerámica con tu logo",
                price=28000,
                stock=100,
                categories=["hogar"],
                is_configurable=True,
                configurable_options=[
                    ConfigurableOption(name="Logo", type="image", required=True),
                    ConfigurableOption(name="Color", type="select", required=True, choices=["blanco", "negro"]),
                    ConfigurableOption(name="Texto", type="text", placeholder="Feliz día"),
                ],
                has_quantity_pricing=True,
                price_tiers=[
                    PriceTier(min_quantity=1, max_quantity=11, unit_price=28000),
                    PriceTier(min_quantity=12, max_quantity=49, unit_price=24000, label="Docena"),
                    PriceTier(min_quantity=50, unit_price=20000, label="Mayorista"),
                ],
                minimum_quantity=1,
            )
        )
        self.add_product(
            Product(
                id="prod_cap",
                organization_id="org_demo",
                name="Gorra Urbana",
                description="Gorra ajustable",
                price=35000,
                stock=0,
                categories=["accesorios"],
            )
        )

        self.add_customer(
            Customer(
                id="cust_demo",
                organization_id="org_demo",
                full_name="Carlos Pérez",
                email="carlos@example.com",
                phone="3001234567",
                total_orders=1,
                total_spent=90000,
                last_shipping_info=ShippingInfo(
                    full_name="Carlos Pérez",
                    phone="3001234567",
                    address="Calle 10 # 5-20",
                    city="Medellín",
                    document_number="1020304050",
                    email="carlos@example.com",
                    state="Antioquia",
                ),
            )
        )
        self.add_order(
            Order(
                id="order_demo",
                organization_id="org_demo",
                customer_id="cust_demo",
                status="shipped",
                items=[LineItem(product_id="prod_tshirt", name="Camiseta Básica", price=45000, quantity=2)],
                total=90000,
                customer_email="carlos@example.com",
                created_at=now - timedelta(days=12),
            )
        )
        self.add_discount(
            Discount(id="disc_welcome", organization_id="org_demo", code="BIENVENIDA10", type="percentage", value=10)
        )
        self.add_conversation(Conversation(id="conv_demo", organization_id="org_demo", agent_id="agent_demo"))
        self.add_cart(Cart(id="cart_demo", organization_id="org_demo", conversation_id="conv_demo"))


_commerce_store: InMemoryCommerceStore | None = None


def get_commerce_store() -> InMemoryCommerceStore:
    """Get or create the process-wide commerce store."""
    global _commerce_store
    if _commerce_store is None:
        _commerce_store = InMemoryCommerceStore()
    return _commerce_store
