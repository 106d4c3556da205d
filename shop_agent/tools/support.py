"""Support tools: store policies, order tracking, customer history and escalation."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from shop_agent.services.commerce import CommerceStore
from shop_agent.tools.base import CONVERSATION_NOT_FOUND, EmptyInput, ToolContext, ToolDefinition, ToolResult
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_NOT_FOUND = "No encontré esa orden. ¿Puedes verificar el número?"

ORDER_STATUS_MESSAGES = {
    "pending": "Pendiente de pago",
    "paid": "Pago confirmado, preparando envío",
    "shipped": "En camino",
    "delivered": "Entregado",
    "cancelled": "Cancelada",
}

DEFAULT_STORE_INFO: dict[str, Any] = {
    "shipping": {
        "description": "Envíos a toda Colombia. Tiempo estimado: 3-5 días hábiles.",
        "freeShippingThreshold": 100000,
    },
    "returns": {"description": "30 días para devoluciones. Producto sin usar y con etiquetas originales."},
    "payment_methods": ["Tarjeta de crédito/débito", "PSE", "Efectivo contra entrega (algunas ciudades)"],
    "hours": {"description": "Atención por chat: Lunes a Viernes 8am-6pm, Sábados 9am-1pm"},
}


class StoreInfoInput(BaseModel):
    """Input schema for store information."""

    topic: Literal["shipping", "returns", "payment_methods", "hours", "general"] = Field(
        "general", description="Tema de la consulta"
    )


class OrderStatusInput(BaseModel):
    """Input schema for order tracking."""

    order_id: str | None = Field(None, description="ID de la orden a consultar")
    email: str | None = Field(None, description="Email usado en la compra (si no tiene el número de orden)")


class EscalateToHumanInput(BaseModel):
    """Input schema for human escalation."""

    reason: str = Field(..., min_length=1, description="Razón por la cual se escala a humano")
    priority: Literal["low", "medium", "high"] = Field("medium", description="Prioridad de la solicitud")


def create_get_store_info_tool(store: CommerceStore) -> ToolDefinition:
    async def get_store_info_handler(params: StoreInfoInput, context: ToolContext) -> ToolResult:
        organization = await store.get_organization(context.tenant_id)
        settings = organization.settings if organization else {}

        info: dict[str, Any] = {
            "storeName": organization.name if organization else None,
            "contactEmail": organization.contact_email if organization else None,
        }

        if params.topic == "general":
            info["general"] = {
                "shipping": "Envíos a toda Colombia",
                "returns": "30 días para devoluciones",
                "paymentMethods": ["Tarjeta", "PSE", "Efectivo"],
            }
        else:
            info[params.topic] = settings.get(params.topic) or DEFAULT_STORE_INFO[params.topic]

        return ToolResult.ok(info)

    return ToolDefinition(
        name="get_store_info",
        description="Consulta información de la tienda: envíos, devoluciones, métodos de pago u horarios.",
        input_schema_class=StoreInfoInput,
        handler=get_store_info_handler,
        display=False,
    )


def create_get_order_status_tool(store: CommerceStore) -> ToolDefinition:
    async def get_order_status_handler(params: OrderStatusInput, context: ToolContext) -> ToolResult:
        if params.order_id:
            order = await store.get_order(context.tenant_id, params.order_id)
        elif params.email:
            order = await store.find_latest_order_by_email(context.tenant_id, params.email)
        elif context.customer_id:
            orders = await store.get_recent_orders(context.tenant_id, context.customer_id, limit=1)
            order = orders[0] if orders else None
        else:
            return ToolResult.fail("Necesito el número de orden o el email usado en la compra")

        if order is None:
            return ToolResult.fail(ORDER_NOT_FOUND)

        # Orders of another customer look exactly like missing ones
        if order.customer_id and order.customer_id != context.customer_id:
            email_matches = (
                params.email is not None
                and order.customer_email is not None
                and params.email.lower() == order.customer_email.lower()
            )
            if not email_matches:
                logger.warning(f"Rejected cross-customer lookup of order {order.id} in {context.conversation_id}")
                return ToolResult.fail(ORDER_NOT_FOUND)

        return ToolResult.ok(
            {
                "orderId": order.id,
                "status": order.status,
                "statusMessage": ORDER_STATUS_MESSAGES.get(order.status, order.status),
                "total": order.total,
                "itemCount": len(order.items),
                "createdAt": order.created_at.isoformat(),
            }
        )

    return ToolDefinition(
        name="get_order_status",
        description="Consulta el estado de una orden existente del cliente por número de orden o email.",
        input_schema_class=OrderStatusInput,
        handler=get_order_status_handler,
        display=False,
    )


def create_get_customer_history_tool(store: CommerceStore) -> ToolDefinition:
    async def get_customer_history_handler(params: EmptyInput, context: ToolContext) -> ToolResult:
        if not context.customer_id:
            return ToolResult.ok({"hasHistory": False, "message": "Cliente no identificado aún"})

        customer = await store.get_customer(context.tenant_id, context.customer_id)
        if customer is None:
            return ToolResult.ok({"hasHistory": False, "message": "Cliente no identificado aún"})

        orders = await store.get_recent_orders(context.tenant_id, context.customer_id, limit=5)
        purchased = list(dict.fromkeys(item.name for order in orders for item in order.items))

        return ToolResult.ok(
            {
                "hasHistory": bool(orders),
                "customer": {
                    "name": customer.full_name,
                    "totalOrders": customer.total_orders,
                    "totalSpent": customer.total_spent,
                },
                "recentOrders": [
                    {
                        "id": order.id,
                        "date": order.created_at.isoformat(),
                        "total": order.total,
                        "status": order.status,
                        "itemCount": len(order.items),
                    }
                    for order in orders
                ],
                "preferences": customer.metadata,
                "purchasedProducts": purchased[:5],
                "lastShippingInfo": (
                    customer.last_shipping_info.model_dump(exclude_none=True) if customer.last_shipping_info else None
                ),
            }
        )

    return ToolDefinition(
        name="get_customer_history",
        description=(
            "Obtiene el historial del cliente identificado: órdenes recientes, preferencias y su ÚLTIMA "
            "DIRECCIÓN DE ENVÍO (lastShippingInfo). Úsala antes de pedir datos de envío para reutilizarlos."
        ),
        input_schema_class=EmptyInput,
        handler=get_customer_history_handler,
        display=False,
    )


def create_escalate_to_human_tool(store: CommerceStore) -> ToolDefinition:
    async def escalate_to_human_handler(params: EscalateToHumanInput, context: ToolContext) -> ToolResult:
        human_agent = await store.find_available_human_agent(context.tenant_id)
        updated = await store.update_conversation_status(
            context.tenant_id,
            context.conversation_id,
            "pending",
            assigned_agent_id=human_agent.id if human_agent else None,
        )
        if not updated:
            return ToolResult.fail(CONVERSATION_NOT_FOUND)

        logger.info(
            f"Escalated conversation {context.conversation_id} ({params.priority}): {params.reason} "
            f"-> {human_agent.id if human_agent else 'queue'}"
        )

        return ToolResult.ok(
            {
                "escalated": True,
                "reason": params.reason,
                "priority": params.priority,
                "agentAssigned": human_agent.name if human_agent else None,
                "message": (
                    f"Te estoy transfiriendo con {human_agent.name}. Un momento por favor."
                    if human_agent
                    else "He notificado a nuestro equipo. Te atenderán en breve."
                ),
            }
        )

    return ToolDefinition(
        name="escalate_to_human",
        description=(
            "Transfiere la conversación a un agente humano cuando no puedas resolver la consulta o el cliente "
            "lo solicite."
        ),
        input_schema_class=EscalateToHumanInput,
        handler=escalate_to_human_handler,
    )
