"""Cart tools."""

from pydantic import BaseModel, Field

from shop_agent.models.commerce import Cart
from shop_agent.services.commerce import CommerceStore
from shop_agent.tools.base import EmptyInput, ToolContext, ToolDefinition, ToolResult
from shop_agent.tools.catalog import PRODUCT_NOT_FOUND

NO_ACTIVE_CART = "No hay carrito activo"
NOT_IN_CART = "Ese producto no está en el carrito"


class AddToCartInput(BaseModel):
    """Input schema for adding a product to the cart."""

    product_id: str = Field(..., min_length=1, description="ID del producto a agregar")
    quantity: int = Field(1, ge=1, le=1000, description="Cantidad a agregar (default: 1)")
    variant: str | None = Field(None, description="Variante seleccionada (talla, color, etc.) si aplica")


class CartItemInput(BaseModel):
    """Input schema for removing a product from the cart."""

    product_id: str = Field(..., min_length=1, description="ID del producto")


class UpdateCartQuantityInput(BaseModel):
    """Input schema for changing the quantity of a cart line."""

    product_id: str = Field(..., min_length=1, description="ID del producto")
    quantity: int = Field(..., ge=0, le=1000, description="Nueva cantidad (0 elimina el producto)")


def cart_summary(cart: Cart | None) -> dict:
    """Serialize a cart with its totals."""
    if cart is None or not cart.items:
        return {"isEmpty": True, "items": [], "itemCount": 0, "totalItems": 0, "total": 0}

    return {
        "isEmpty": False,
        "items": [item.model_dump() for item in cart.items],
        "itemCount": len(cart.items),
        "totalItems": cart.total_items,
        "total": cart.subtotal,
    }


def create_add_to_cart_tool(store: CommerceStore) -> ToolDefinition:
    async def add_to_cart_handler(params: AddToCartInput, context: ToolContext) -> ToolResult:
        product = await store.get_product(context.tenant_id, params.product_id)
        if product is None:
            return ToolResult.fail(PRODUCT_NOT_FOUND)

        if product.stock < params.quantity:
            return ToolResult.fail(f"Solo hay {product.stock} unidades disponibles de {product.name}")

        if product.minimum_quantity and params.quantity < product.minimum_quantity:
            return ToolResult.fail(
                f"La cantidad mínima de pedido para {product.name} es {product.minimum_quantity} unidades"
            )

        available_variants = product.variant_values()
        if params.variant and params.variant.lower() not in (v.lower() for v in available_variants):
            options = ", ".join(available_variants) or "ninguna"
            return ToolResult.fail(
                f"La variante '{params.variant}' no existe para {product.name}. Disponibles: {options}"
            )
        if available_variants and not params.variant:
            dimensions = ", ".join(f"{v.type}: {'/'.join(v.values)}" for v in product.variants)
            return ToolResult.fail(f"{product.name} requiere elegir variante ({dimensions})")

        # The client applies the cart change; nothing is written server-side here
        data = {"type": "add_to_cart", "product_id": product.id, "quantity": params.quantity}
        if params.variant:
            data["variant"] = params.variant
        return ToolResult.ok(data)

    return ToolDefinition(
        name="add_to_cart",
        description=(
            "Agrega un producto al carrito del cliente. Usa esto cuando el cliente confirme que quiere comprar "
            "algo. Si el producto tiene variantes, primero pregunta cuál desea."
        ),
        input_schema_class=AddToCartInput,
        handler=add_to_cart_handler,
    )


def create_get_cart_tool(store: CommerceStore) -> ToolDefinition:
    async def get_cart_handler(params: EmptyInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        return ToolResult.ok(cart_summary(cart))

    return ToolDefinition(
        name="get_cart",
        description="Obtiene el estado actual del carrito del cliente (productos, cantidades, total).",
        input_schema_class=EmptyInput,
        handler=get_cart_handler,
    )


def create_remove_from_cart_tool(store: CommerceStore) -> ToolDefinition:
    async def remove_from_cart_handler(params: CartItemInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        if cart is None:
            return ToolResult.fail(NO_ACTIVE_CART)

        removed = next((item for item in cart.items if item.product_id == params.product_id), None)
        if removed is None:
            return ToolResult.fail(NOT_IN_CART)

        remaining = [item for item in cart.items if item.product_id != params.product_id]
        cart = await store.save_cart_items(context.tenant_id, cart.id, remaining)

        return ToolResult.ok({"removed": removed.name, "remainingItems": len(cart.items), "cart": cart_summary(cart)})

    return ToolDefinition(
        name="remove_from_cart",
        description="Elimina un producto del carrito del cliente.",
        input_schema_class=CartItemInput,
        handler=remove_from_cart_handler,
    )


def create_update_cart_quantity_tool(store: CommerceStore) -> ToolDefinition:
    async def update_cart_quantity_handler(params: UpdateCartQuantityInput, context: ToolContext) -> ToolResult:
        cart = await store.get_active_cart(context.tenant_id, context.conversation_id)
        if cart is None:
            return ToolResult.fail(NO_ACTIVE_CART)

        line = next((item for item in cart.items if item.product_id == params.product_id), None)
        if line is None:
            return ToolResult.fail(NOT_IN_CART)

        if params.quantity > 0:
            product = await store.get_product(context.tenant_id, params.product_id)
            if product is not None and product.stock < params.quantity:
                return ToolResult.fail(f"Solo hay {product.stock} unidades disponibles de {product.name}")

        items = []
        for item in cart.items:
            if item.product_id == params.product_id:
                item = item.model_copy(update={"quantity": params.quantity})
            if item.quantity > 0:
                items.append(item)

        cart = await store.save_cart_items(context.tenant_id, cart.id, items)
        return ToolResult.ok({"cart": cart_summary(cart)})

    return ToolDefinition(
        name="update_cart_quantity",
        description="Cambia la cantidad de un producto en el carrito. Una cantidad de 0 lo elimina.",
        input_schema_class=UpdateCartQuantityInput,
        handler=update_cart_quantity_handler,
    )
