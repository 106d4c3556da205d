"""Context assembly: system prompt and business-state blocks for the model.

Conversational judgment (when to search, when to ask for a variant, when to
identify the customer) is steered here through prompt rules; correctness of
side effects is enforced by the tools themselves.
"""

from shop_agent.models.commerce import Agent, Cart, ConfigurableOption, Customer, Order, Product, StoredMessage
from shop_agent.models.llm import LLMMessage

CUSTOM_INSTRUCTIONS_MIN_LENGTH = 50
DEFAULT_TONE = "amigable y profesional"

RESPONSE_FORMAT = """FORMATO DE RESPUESTA:
- Escribe respuestas cortas y claras
- Usa párrafos separados (máximo 2-3 oraciones por párrafo)
- Deja una línea en blanco entre párrafos para mejor legibilidad
- No escribas todo en un solo bloque de texto"""

INVENTORY_RULES = """REGLAS CRÍTICAS DE INVENTARIO:
1. ANTES de confirmar cualquier compra o agregar al carrito, DEBES verificar si el producto tiene variantes (talla, color).
2. Si el producto tiene variantes, PREGUNTA al cliente cuál desea.
3. SOLO ofrece las variantes que existen en el catálogo. NO INVENTES tallas o colores.
4. Si el cliente pide una variante que no existe, dile amablemente que no está disponible y ofrece las que sí hay.
5. Verifica siempre el stock disponible (get_product_availability) antes de prometer un producto.
6. Identifica al cliente con identify_customer en cuanto comparta su email o teléfono."""

FULL_TOOL_GUIDE = """HERRAMIENTAS DISPONIBLES (úsalas cuando sea necesario):
- search_products: Buscar productos por nombre o categoría (ÚSALA SIEMPRE antes de mencionar que tenemos algo)
- show_product: Mostrar tarjeta visual de un producto (úsala para que el cliente vea imagen y botón de compra)
- get_product_availability: Verificar stock y variantes reales
- add_to_cart / get_cart / remove_from_cart / update_cart_quantity: Gestionar el carrito
- identify_customer: Identificar al cliente cuando dé su email o teléfono
- get_customer_history: Historial del cliente, incluyendo su ÚLTIMA DIRECCIÓN DE ENVÍO. Úsala antes de pedir datos de envío
- render_checkout_summary: Úsala cuando el cliente diga "quiero comprar", "pagar", "finalizar"
- confirm_shipping_details: Confirmar datos de envío (nombre, teléfono, dirección, ciudad, cédula)
- create_payment_link: Después de confirm_shipping_details. Genera el link de pago (epayco) o registra contra entrega (manual)
- get_store_info / get_order_status: Políticas de la tienda y estado de pedidos
- escalate_to_human: Transferir a agente humano si es necesario

FLUJO DE CHECKOUT CONVERSACIONAL (¡REUTILIZA TODOS LOS DATOS!):
1. Cliente dice que quiere comprar → usa 'render_checkout_summary'
2. Usa 'get_customer_history' para obtener datos guardados
3. Si 'lastShippingInfo' existe, muéstrale sus datos y pregunta si enviamos a la misma dirección
4. Si no existe, pide los datos conversacionalmente
5. Con todos los datos, usa 'confirm_shipping_details'
6. Pregunta: "¿Cómo prefieres pagar? Pago en línea (tarjetas, PSE) o contra entrega"
7. Usa 'create_payment_link' con payment_method='epayco' o 'manual' y comparte el link

CAMPOS MÍNIMOS REQUERIDOS: nombre completo, teléfono, dirección, ciudad, número de cédula.
Email y departamento son OPCIONALES (no insistas).

REGLAS ANTI-BUCLE:
1. NUNCA pidas datos que el cliente YA te dio en esta conversación
2. Una vez que uses 'confirm_shipping_details', NO vuelvas a pedir datos de envío
3. Si el cliente rechaza una promoción, no vuelvas a ofrecerla

REGLAS CRÍTICAS DE VERACIDAD (ANTI-ALUCINACIONES):
1. NO inventes productos, precios ni características. Si search_products no lo encuentra, di que no lo tenemos.
2. NO prometas envío gratis ni descuentos que no estén en la información del negocio."""

SHORT_TOOL_GUIDE = """REGLAS DE ORO (ANTI-ALUCINACIONES):
1. JAMÁS inventes productos. Si search_products no devuelve nada, di que no lo tenemos.
2. JAMÁS inventes precios o promociones de envío.
3. Verifica siempre el stock antes de ofrecer.

HERRAMIENTAS:
- search_products: Buscar productos (ÚSALA SIEMPRE ANTES DE RESPONDER SOBRE DISPONIBILIDAD)
- show_product: Mostrar tarjeta del producto (usa siempre que menciones un producto)
- add_to_cart / get_cart: Agregar al carrito y ver carrito
- render_checkout_summary: Mostrar resumen y comenzar checkout (cuando el cliente quiera pagar)
- confirm_shipping_details: Confirmar datos de envío completos
- create_payment_link: Generar el link de pago
- escalate_to_human: Transferir a humano

FLUJO DE CHECKOUT:
1. Cliente quiere comprar → 'render_checkout_summary'
2. Pide datos de envío conversacionalmente
3. Todos los datos listos → 'confirm_shipping_details'
4. Método de pago elegido → 'create_payment_link'"""


def format_price(value: float) -> str:
    """Format an amount the way Colombian stores display it ($45.000)."""
    return "$" + f"{value:,.0f}".replace(",", ".")


def _describe_option(option: ConfigurableOption) -> str:
    desc = f"- {option.name} ({option.type}){' [REQUERIDO]' if option.required else ' [opcional]'}"
    if option.choices:
        desc += f" → Opciones: {', '.join(option.choices)}"
    if option.placeholder:
        desc += f' → Ej: "{option.placeholder}"'
    if option.type == "number" and (option.min is not None or option.max is not None):
        desc += f" → Rango: {option.min if option.min is not None else 0} a {option.max if option.max is not None else '∞'}"
    if option.type == "image":
        desc += " → Pedir link de Google Drive/Dropbox con el logo"
    return desc


def build_current_product_context(product: Product) -> str:
    """Framing for a customer who arrived with a product already in view."""
    lines = [
        "CONTEXTO ACTUAL (PRIORIDAD MÁXIMA):",
        f'El cliente está viendo AHORA MISMO: "{product.name}" (ID: {product.id})',
        f"Precio base: {format_price(product.price)}",
        f"Stock: {product.stock}",
    ]

    if product.variants:
        lines.append("Variantes: " + " | ".join(f"{v.type}: {', '.join(v.values)}" for v in product.variants))

    if product.has_quantity_pricing and product.price_tiers:
        lines.append("")
        lines.append("PRECIOS POR CANTIDAD (MAYOREO):")
        for tier in product.price_tiers:
            upper = f"-{tier.max_quantity}" if tier.max_quantity else "+"
            label = f" ({tier.label})" if tier.label else ""
            lines.append(f"- {tier.min_quantity}{upper} unidades: {format_price(tier.unit_price)}/u{label}")
        if product.minimum_quantity:
            lines.append(f"Cantidad mínima de pedido: {product.minimum_quantity} unidades")
        lines.append("INSTRUCCIÓN: Cuando el cliente pregunte precio, pregunta primero la cantidad.")

    if product.is_configurable and product.configurable_options:
        lines.append("")
        lines.append("PRODUCTO PERSONALIZABLE - OPCIONES A RECOLECTAR:")
        lines.extend(_describe_option(option) for option in product.configurable_options)
        lines.append("Recolecta cada opción [REQUERIDO] conversacionalmente y confirma el resumen antes de agregar.")

    lines.append("")
    lines.append(
        f'INSTRUCCIÓN IMPORTANTE: Si el cliente dice "me interesa este producto" o pregunta detalles, '
        f'se refiere EXCLUSIVAMENTE a "{product.name}".'
    )
    return "\n".join(lines)


def build_system_prompt(
    agent: Agent,
    organization_name: str,
    product_count: int,
    customer: Customer | None = None,
    current_product: Product | None = None,
) -> str:
    """Build the system prompt for one turn.

    Agents with substantial custom instructions get them verbatim plus the
    full technical context; other agents get the default sales persona.
    """
    custom_instructions = (agent.custom_instructions or "").strip()
    customer_line = (
        f"CLIENTE: Estás hablando con {customer.full_name or 'el cliente'}."
        if customer
        else "CLIENTE: Nuevo cliente, no identificado aún."
    )
    catalog_line = (
        f"CATÁLOGO: Tienes acceso a {product_count} productos de {organization_name}. Usa search_products para buscar."
    )

    sections: list[str]
    if len(custom_instructions) > CUSTOM_INSTRUCTIONS_MIN_LENGTH:
        sections = [
            custom_instructions,
            "---",
            RESPONSE_FORMAT,
            "CONTEXTO TÉCNICO (información adicional para esta conversación):",
            customer_line,
            catalog_line,
        ]
        if current_product:
            sections.append(build_current_product_context(current_product))
        sections.append(FULL_TOOL_GUIDE)
    else:
        base_prompt = agent.system_prompt or f"Eres {agent.name}, asistente de ventas de {organization_name}."
        sections = [
            base_prompt,
            f"PERSONALIDAD: Sé {agent.tone or DEFAULT_TONE}, natural y conversacional.",
            "OBJETIVO: Ayudar al cliente a encontrar productos y completar su compra.",
            RESPONSE_FORMAT,
            customer_line,
        ]
        if current_product:
            sections.append(build_current_product_context(current_product))
        sections.extend([catalog_line, SHORT_TOOL_GUIDE])

    sections.append(INVENTORY_RULES)
    return "\n\n".join(sections)


def build_customer_context(customer: Customer | None = None, orders: list[Order] | None = None) -> str:
    """Summarize the identified customer and their recent purchases."""
    if customer is None:
        return "Cliente no identificado. Si proporciona nombre y contacto, usa identify_customer."

    context = "INFORMACIÓN DEL CLIENTE:\n"
    context += f"- Nombre: {customer.full_name or 'No proporcionado'}\n"
    context += f"- Email: {customer.email or 'No proporcionado'}\n"
    context += f"- Teléfono: {customer.phone or 'No proporcionado'}\n"

    if orders:
        last_order = orders[0]
        context += "\nHISTORIAL DE COMPRAS:\n"
        context += f"- Última compra: {last_order.created_at.strftime('%d/%m/%Y')}\n"
        context += f"- Total: {format_price(last_order.total)}\n"
        context += f"- Estado: {last_order.status}\n"
        if len(orders) > 1:
            context += f"- Total de órdenes: {len(orders)}\n"
    else:
        context += "\nEs un cliente nuevo o sin compras previas.\n"

    return context


def build_cart_context(cart: Cart | None = None) -> str:
    """Summarize the active cart."""
    if cart is None or not cart.items:
        return "CARRITO ACTUAL: Vacío"

    context = "CARRITO ACTUAL:\n"
    for item in cart.items:
        variant = f" ({item.variant})" if item.variant else ""
        context += f"- {item.name}{variant} x{item.quantity} = {format_price(item.subtotal)}\n"
    context += f"\nTotal: {format_price(cart.subtotal)}"
    return context


def build_product_context(products: list[Product]) -> str:
    """Full catalog listing, for small catalogs and debugging tools."""
    if not products:
        return "No hay productos disponibles actualmente."

    entries = []
    for product in products:
        lines = [f"- {product.name} (ID: {product.id})", f"  Precio: {format_price(product.price)}"]
        lines.append(f"  Stock: {product.stock} unidades")
        if product.description:
            lines.append(f"  Descripción: {product.description}")
        if product.categories:
            lines.append(f"  Categorías: {', '.join(product.categories)}")
        if product.variants:
            lines.append("  Variantes: " + " | ".join(f"{v.type}: {', '.join(v.values)}" for v in product.variants))
        entries.append("\n".join(lines))

    return "Productos disponibles:\n\n" + "\n\n".join(entries)


def build_conversation_history(messages: list[StoredMessage]) -> list[LLMMessage]:
    """Convert stored messages (oldest first) into an alternating model history.

    Empty messages are dropped, consecutive messages from the same side are
    merged and leading assistant messages are skipped so the history starts
    with the user.
    """
    history: list[LLMMessage] = []
    for message in messages:
        content = message.content.strip()
        if not content:
            continue
        role = "user" if message.sender_type == "user" else "assistant"

        if not history and role == "assistant":
            continue
        if history and history[-1].role == role:
            history[-1] = LLMMessage(role=role, content=f"{history[-1].content}\n\n{content}")
        else:
            history.append(LLMMessage(role=role, content=content))

    return history


def without_stored_inbound(messages: list[StoredMessage], inbound: str) -> list[StoredMessage]:
    """Drop the inbound message when it is already the latest stored message.

    Only the newest message is checked, before any merging, so an earlier
    unanswered customer message stays in the history exactly once.
    """
    if messages and messages[-1].sender_type == "user" and messages[-1].content.strip() == inbound.strip():
        return messages[:-1]
    return messages


def append_user_message(history: list[LLMMessage], message: str) -> list[LLMMessage]:
    """End the history with the inbound message, merging into a trailing user turn."""
    history = list(history)
    if history and history[-1].role == "user":
        history[-1] = LLMMessage(role="user", content=f"{history[-1].content}\n\n{message}")
        return history

    history.append(LLMMessage(role="user", content=message))
    return history
