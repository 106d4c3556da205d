"""Checkout tools: summaries, shipping, discounts and payment links."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from shop_agent.models.commerce import ShippingInfo
from shop_agent.services.commerce import CommerceStore
from shop_agent.services.payments import PaymentLinkService
from shop_agent.tools.base import CONVERSATION_NOT_FOUND, EmptyInput, ToolContext, ToolDefinition, ToolResult
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)

EMPTY_CART = "El carrito está vacío"
DEFAULT_PAYMENT_METHOD = "epayco"

SHIPPING_OPTIONS = [
    {"id": "standard", "name": "Envío Estándar", "price": 10000, "days": "3-5 días hábiles"},
    {"id": "express", "name": "Envío Express", "price": 20000, "days": "1-2 días hábiles"},
]
SAME_DAY_OPTION = {"id": "same_day", "name": "Mismo Día", "price": 15000, "days": "Hoy"}
SAME_DAY_CITIES = ("bogota", "bogotá")


class ShippingOptionsInput(BaseModel):
    """Input schema for shipping options."""

    city: str | None = Field(None, description="Ciudad de destino")


class ApplyDiscountInput(BaseModel):
    """Input schema for discount codes."""

    code: str = Field(..., min_length=1, max_length=50, description="Código de descuento a aplicar")


class ConfirmShippingDetailsInput(BaseModel):
    """Input schema for confirming shipping details."""

    full_name: str = Field(..., min_length=2, description="Nombre completo de quien recibe")
    phone: str = Field(..., min_length=7, max_length=20, description="Teléfono de contacto")
    address: str = Field(..., min_length=5, description="Dirección completa de entrega")
    city: str = Field(..., min_length=2, description="Ciudad")
    document_number: str = Field(..., min_length=5, max_length=20, description="Número de documento")
    document_type: Literal["CC", "CE", "NIT", "PP", "TI"] = Field("CC", description="Tipo de documento (default: CC)")
    email: str | None = Field(None, description="Email (opcional, no insistir)")
    state: str | None = Field(None, description="Departamento (opcional, inferir de la ciudad)")


class CreatePaymentLinkInput(BaseModel):
    """Input schema for payment link creation."""

    payment_method: Literal["epayco", "manual"] = Field(
        DEFAULT_PAYMENT_METHOD,
        description="'epayco' para pago en línea (tarjetas, PSE) o 'manual' para contra entrega",
    )


def create_start_checkout_tool(store: CommerceStore) -> ToolDefinition:
    async def start_checkout_handler(params: EmptyInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        if cart is None or not cart.items:
            return ToolResult.fail(EMPTY_CART)

        return ToolResult.ok(
            {
                "readyForCheckout": True,
                "summary": {
                    "items": [item.model_dump() for item in cart.items],
                    "subtotal": cart.subtotal,
                    "shipping": "Por calcular",
                    "total": cart.subtotal,
                },
                "nextStep": "El cliente debe proporcionar dirección de envío y método de pago",
            }
        )

    return ToolDefinition(
        name="start_checkout",
        description="Inicia el proceso de compra con el contenido del carrito y retorna el resumen y el siguiente paso.",
        input_schema_class=EmptyInput,
        handler=start_checkout_handler,
    )


def create_get_shipping_options_tool() -> ToolDefinition:
    async def get_shipping_options_handler(params: ShippingOptionsInput, context: ToolContext) -> ToolResult:
        options = [dict(option) for option in SHIPPING_OPTIONS]
        if params.city and any(name in params.city.lower() for name in SAME_DAY_CITIES):
            options.append(dict(SAME_DAY_OPTION))
        return ToolResult.ok({"options": options, "city": params.city})

    return ToolDefinition(
        name="get_shipping_options",
        description="Obtiene las opciones de envío disponibles (precio y tiempo) para una ciudad.",
        input_schema_class=ShippingOptionsInput,
        handler=get_shipping_options_handler,
        display=False,
    )


def create_apply_discount_tool(store: CommerceStore) -> ToolDefinition:
    async def apply_discount_handler(params: ApplyDiscountInput, context: ToolContext) -> ToolResult:
        discount = await store.get_discount(context.tenant_id, params.code.strip())
        if discount is None:
            return ToolResult.fail("Código de descuento inválido o expirado")

        if discount.valid_until and discount.valid_until < datetime.now(UTC):
            return ToolResult.fail("Este código ha expirado")

        if discount.max_uses is not None and discount.used_count >= discount.max_uses:
            return ToolResult.fail("Este código ya alcanzó su límite de usos")

        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        subtotal = cart.subtotal if cart else 0

        if discount.min_purchase and subtotal < discount.min_purchase:
            return ToolResult.fail(f"Este código requiere una compra mínima de ${discount.min_purchase:,.0f}")

        if discount.type == "percentage":
            amount = subtotal * (discount.value / 100)
        else:
            amount = min(discount.value, subtotal)

        return ToolResult.ok(
            {
                "code": discount.code,
                "type": discount.type,
                "value": discount.value,
                "discountAmount": amount,
                "newTotal": subtotal - amount,
            }
        )

    return ToolDefinition(
        name="apply_discount",
        description="Aplica un código de descuento al carrito del cliente.",
        input_schema_class=ApplyDiscountInput,
        handler=apply_discount_handler,
    )


def create_render_checkout_summary_tool(store: CommerceStore) -> ToolDefinition:
    async def render_checkout_summary_handler(params: EmptyInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        if cart is None or not cart.items:
            return ToolResult.fail(EMPTY_CART)

        return ToolResult.ok(
            {
                "type": "checkout_summary",
                "items": [item.model_dump() for item in cart.items],
                "itemCount": len(cart.items),
                "totalItems": cart.total_items,
                "subtotal": cart.subtotal,
                "total": cart.subtotal,
            }
        )

    return ToolDefinition(
        name="render_checkout_summary",
        description=(
            "Muestra al cliente un resumen visual del carrito para comenzar el checkout conversacional. "
            "Úsala cuando el cliente diga 'quiero comprar', 'pagar' o 'finalizar'."
        ),
        input_schema_class=EmptyInput,
        handler=render_checkout_summary_handler,
    )


def create_confirm_shipping_details_tool(store: CommerceStore) -> ToolDefinition:
    async def confirm_shipping_details_handler(params: ConfirmShippingDetailsInput, context: ToolContext) -> ToolResult:
        details = ShippingInfo(**params.model_dump())

        if not await store.save_shipping_details(context.tenant_id, context.conversation_id, details):
            return ToolResult.fail(CONVERSATION_NOT_FOUND)
        if context.customer_id:
            await store.save_customer_shipping_info(context.tenant_id, context.customer_id, details)

        return ToolResult.ok(
            {
                "type": "shipping_confirmed",
                "shipping": details.model_dump(exclude_none=True),
                "nextStep": "Pregunta el método de pago: pago en línea (epayco) o contra entrega (manual)",
            }
        )

    return ToolDefinition(
        name="confirm_shipping_details",
        description=(
            "Confirma los datos de envío del cliente (nombre, teléfono, dirección, ciudad y documento). "
            "Úsala en cuanto tengas los datos mínimos; no vuelvas a pedirlos después."
        ),
        input_schema_class=ConfirmShippingDetailsInput,
        handler=confirm_shipping_details_handler,
    )


def create_create_payment_link_tool(store: CommerceStore, payments: PaymentLinkService) -> ToolDefinition:
    async def create_payment_link_handler(params: CreatePaymentLinkInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        if cart is None or not cart.items:
            return ToolResult.fail(EMPTY_CART)

        conversation = await store.get_conversation(context.tenant_id, context.conversation_id)
        if conversation is None or conversation.shipping_details is None:
            return ToolResult.fail("Primero confirma los datos de envío con confirm_shipping_details")

        order = await store.create_order(
            context.tenant_id,
            context.conversation_id,
            context.customer_id,
            cart.items,
            params.payment_method,
            conversation.shipping_details,
        )

        data = {
            "type": "payment_link",
            "orderId": order.id,
            "total": order.total,
            "paymentMethod": params.payment_method,
            "paymentUrl": None,
        }

        if params.payment_method == "manual":
            data["message"] = "Pedido registrado. Pagarás contra entrega al recibir tu pedido."
            return ToolResult.ok(data)

        try:
            payment_url = await payments.create_payment_link(order, conversation.shipping_details)
        except Exception:
            logger.exception(f"Payment link failed for order {order.id}; cancelling it")
            await store.set_order_status(context.tenant_id, order.id, "cancelled")
            return ToolResult.fail("No pude generar el link de pago en este momento. Intenta de nuevo en unos minutos.")

        await store.set_order_payment_url(context.tenant_id, order.id, payment_url)
        data["paymentUrl"] = payment_url
        data["message"] = "Comparte este link con el cliente para completar el pago."
        return ToolResult.ok(data)

    return ToolDefinition(
        name="create_payment_link",
        description=(
            "Crea el pedido y genera el link de pago. Úsala después de confirm_shipping_details, cuando el "
            "cliente elija método de pago: 'epayco' (pago en línea, default) o 'manual' (contra entrega)."
        ),
        input_schema_class=CreatePaymentLinkInput,
        handler=create_payment_link_handler,
    )
