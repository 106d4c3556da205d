"""Catalog tools: product search, product cards and availability."""

from pydantic import BaseModel, Field

from shop_agent.models.commerce import Product
from shop_agent.services.commerce import CommerceStore
from shop_agent.tools.base import ToolContext, ToolDefinition, ToolResult

PRODUCT_NOT_FOUND = "Producto no encontrado"


class SearchProductsInput(BaseModel):
    """Input schema for product search."""

    query: str = Field(..., max_length=200, description="Término de búsqueda (nombre, descripción, categoría)")
    max_results: int = Field(5, ge=1, le=20, description="Número máximo de resultados a retornar (default: 5)")
    min_price: float | None = Field(None, ge=0, description="Precio mínimo (opcional)")
    max_price: float | None = Field(None, ge=0, description="Precio máximo (opcional)")
    category: str | None = Field(None, description="Categoría a filtrar (opcional)")


class ShowProductInput(BaseModel):
    """Input schema for showing a product card."""

    product_id: str = Field(..., min_length=1, description="ID del producto a mostrar")
    message: str | None = Field(None, description="Mensaje personalizado para acompañar el producto (opcional)")


class ProductAvailabilityInput(BaseModel):
    """Input schema for availability checks."""

    product_id: str = Field(..., min_length=1, description="ID del producto")
    variant: str | None = Field(None, description="Variante a verificar (talla, color) si aplica")


def product_card(product: Product) -> dict:
    """Serialize a product for the client's product card."""
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "image_url": product.primary_image,
        "images": product.images,
        "stock": product.stock,
        "sku": product.sku,
        "categories": product.categories,
        "variants": [variant.model_dump() for variant in product.variants],
    }


def create_search_products_tool(store: CommerceStore) -> ToolDefinition:
    async def search_products_handler(params: SearchProductsInput, context: ToolContext) -> ToolResult:
        products = await store.search_products(
            context.tenant_id,
            params.query,
            category=params.category,
            min_price=params.min_price,
            max_price=params.max_price,
            limit=params.max_results,
        )

        return ToolResult.ok(
            {
                "products": [
                    {
                        "id": p.id,
                        "name": p.name,
                        "description": p.description,
                        "price": p.price,
                        "image_url": p.primary_image,
                        "stock": p.stock,
                        "hasVariants": bool(p.variants),
                    }
                    for p in products
                ],
                "totalFound": len(products),
            }
        )

    return ToolDefinition(
        name="search_products",
        description=(
            "Busca productos en el catálogo basándose en criterios como nombre, categoría o precio. "
            "Retorna una lista de productos activos y con stock que coinciden. "
            "Úsala SIEMPRE antes de afirmar que la tienda tiene un producto."
        ),
        input_schema_class=SearchProductsInput,
        handler=search_products_handler,
    )


def create_show_product_tool(store: CommerceStore) -> ToolDefinition:
    async def show_product_handler(params: ShowProductInput, context: ToolContext) -> ToolResult:
        product = await store.get_product(context.tenant_id, params.product_id)
        if product is None:
            return ToolResult.fail(PRODUCT_NOT_FOUND)

        data = {"product": product_card(product)}
        if params.message:
            data["message"] = params.message
        return ToolResult.ok(data)

    return ToolDefinition(
        name="show_product",
        description=(
            "Muestra un producto específico al cliente con su imagen, precio y descripción. Usa esto cuando el "
            "cliente pregunte por un producto o cuando quieras recomendar algo específico."
        ),
        input_schema_class=ShowProductInput,
        handler=show_product_handler,
    )


def create_get_product_availability_tool(store: CommerceStore) -> ToolDefinition:
    async def get_product_availability_handler(params: ProductAvailabilityInput, context: ToolContext) -> ToolResult:
        product = await store.get_product(context.tenant_id, params.product_id)
        if product is None:
            return ToolResult.fail(PRODUCT_NOT_FOUND)

        data = {
            "available": product.stock > 0,
            "quantity": product.stock,
            "productName": product.name,
            "variants": [variant.model_dump() for variant in product.variants],
        }
        if params.variant:
            data["variantExists"] = params.variant.lower() in (v.lower() for v in product.variant_values())
        return ToolResult.ok(data)

    return ToolDefinition(
        name="get_product_availability",
        description=(
            "Consulta el stock disponible de un producto y sus variantes reales. Úsala antes de confirmar "
            "disponibilidad, tallas o colores; nunca inventes variantes."
        ),
        input_schema_class=ProductAvailabilityInput,
        handler=get_product_availability_handler,
        display=False,
    )
