"""Customer identification tool."""

from pydantic import BaseModel, Field, field_validator

from shop_agent.services.commerce import CommerceStore
from shop_agent.tools.base import CONVERSATION_NOT_FOUND, ToolContext, ToolDefinition, ToolResult
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)


class IdentifyCustomerInput(BaseModel):
    """Input schema for customer identification."""

    name: str | None = Field(None, max_length=120, description="Nombre completo del cliente")
    email: str | None = Field(None, max_length=254, description="Email del cliente")
    phone: str | None = Field(None, max_length=30, description="Teléfono del cliente")

    @field_validator("name", "email", "phone")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        if v and "@" not in v:
            raise ValueError("Email inválido")
        return v.lower() if v else v


def create_identify_customer_tool(store: CommerceStore) -> ToolDefinition:
    async def identify_customer_handler(params: IdentifyCustomerInput, context: ToolContext) -> ToolResult:
        if not params.email and not params.phone:
            return ToolResult.fail("Se necesita al menos email o teléfono para identificar al cliente")

        if await store.get_conversation(context.tenant_id, context.conversation_id) is None:
            return ToolResult.fail(CONVERSATION_NOT_FOUND)

        customer = await store.find_customer(context.tenant_id, email=params.email, phone=params.phone)
        if customer is None and params.email and params.phone:
            customer = await store.find_customer(context.tenant_id, phone=params.phone)

        if customer:
            await store.link_customer(context.tenant_id, context.conversation_id, customer.id)
            await store.record_customer_interaction(context.tenant_id, customer.id)
            context.customer_id = customer.id

            orders = await store.get_recent_orders(context.tenant_id, customer.id, limit=1)
            last_order = orders[0] if orders else None
            logger.info(f"Identified returning customer {customer.id} in conversation {context.conversation_id}")

            return ToolResult.ok(
                {
                    "isReturning": True,
                    "customer": {
                        "id": customer.id,
                        "name": customer.full_name,
                        "email": customer.email,
                        "phone": customer.phone,
                    },
                    "stats": {"totalOrders": customer.total_orders, "totalSpent": customer.total_spent},
                    "lastOrder": (
                        {
                            "date": last_order.created_at.isoformat(),
                            "total": last_order.total,
                            "status": last_order.status,
                        }
                        if last_order
                        else None
                    ),
                    "preferences": customer.metadata,
                }
            )

        customer = await store.create_customer(context.tenant_id, params.name, params.email, params.phone)
        await store.link_customer(context.tenant_id, context.conversation_id, customer.id)
        context.customer_id = customer.id

        return ToolResult.ok(
            {
                "isReturning": False,
                "customer": {
                    "id": customer.id,
                    "name": customer.full_name,
                    "email": customer.email,
                    "phone": customer.phone,
                },
            }
        )

    return ToolDefinition(
        name="identify_customer",
        description=(
            "Identifica o registra al cliente con su nombre y datos de contacto. Úsala en cuanto el cliente "
            "comparta su email o teléfono. Retorna si es un cliente recurrente, sus estadísticas y su última compra."
        ),
        input_schema_class=IdentifyCustomerInput,
        handler=identify_customer_handler,
    )
