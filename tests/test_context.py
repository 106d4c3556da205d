"""Tests for prompt and context assembly."""

from shop_agent.models.commerce import (
    Agent,
    AgentConfiguration,
    Cart,
    Customer,
    LineItem,
    Order,
    PersonalitySettings,
    StoredMessage,
)
from shop_agent.models.llm import LLMMessage
from shop_agent.services.context import (
    append_user_message,
    build_cart_context,
    build_conversation_history,
    build_customer_context,
    build_product_context,
    build_system_prompt,
    format_price,
    without_stored_inbound,
)

LONG_INSTRUCTIONS = (
    "Eres Valentina, la asesora de moda de Boutique Luna. Hablas con calidez, recomiendas conjuntos completos "
    "y siempre mencionas nuestra garantía de cambio."
)


def message(sender: str, content: str) -> StoredMessage:
    return StoredMessage(id=f"m_{sender}_{content[:5]}", conversation_id="conv_demo", sender_type=sender, content=content)


class TestSystemPrompt:
    """Tests for the two prompt branches and the product framing."""

    def test_default_persona(self):
        """Test the default branch for agents without custom instructions."""
        agent = Agent(id="a1", organization_id="org_demo", name="Sofía")

        prompt = build_system_prompt(agent, "Tienda Demo", 12)

        assert prompt.startswith("Eres Sofía, asistente de ventas de Tienda Demo.")
        assert "amigable y profesional" in prompt
        assert "12 productos de Tienda Demo" in prompt
        assert "Nuevo cliente, no identificado" in prompt
        assert "REGLAS CRÍTICAS DE INVENTARIO" in prompt

    def test_agent_tone_and_system_prompt(self):
        """Test that configured tone and base prompt are used."""
        agent = Agent(
            id="a1",
            organization_id="org_demo",
            name="Sofía",
            system_prompt="Eres la voz de Tienda Demo.",
            configuration=AgentConfiguration(tone="divertida"),
        )

        prompt = build_system_prompt(agent, "Tienda Demo", 3)

        assert prompt.startswith("Eres la voz de Tienda Demo.")
        assert "Sé divertida" in prompt

    def test_custom_instructions_branch(self):
        """Test that long custom instructions lead the prompt, followed by the full guide."""
        agent = Agent(
            id="a1",
            organization_id="org_demo",
            name="Valentina",
            configuration=AgentConfiguration(personality=PersonalitySettings(instructions=LONG_INSTRUCTIONS)),
        )
        customer = Customer(id="c1", organization_id="org_demo", full_name="Ana")

        prompt = build_system_prompt(agent, "Boutique Luna", 40, customer=customer)

        assert prompt.startswith(LONG_INSTRUCTIONS)
        assert "CONTEXTO TÉCNICO" in prompt
        assert "REGLAS ANTI-BUCLE" in prompt
        assert "Estás hablando con Ana" in prompt
        assert "asistente de ventas de" not in prompt

    def test_short_custom_instructions_use_default_branch(self):
        """Test that trivial instructions do not replace the default persona."""
        agent = Agent(
            id="a1",
            organization_id="org_demo",
            name="Sofía",
            configuration=AgentConfiguration(personality=PersonalitySettings(instructions="Sé breve.")),
        )

        prompt = build_system_prompt(agent, "Tienda Demo", 1)

        assert prompt.startswith("Eres Sofía")
        assert "CONTEXTO TÉCNICO" not in prompt

    def test_currently_viewing_framing(self, store):
        """Test that the product in view is framed with tiers and options."""
        agent = Agent(id="a1", organization_id="org_demo", name="Sofía")
        mug = store.products["prod_mug"]

        prompt = build_system_prompt(agent, "Tienda Demo", 3, current_product=mug)

        assert 'El cliente está viendo AHORA MISMO: "Mug Personalizado" (ID: prod_mug)' in prompt
        assert "PRECIOS POR CANTIDAD" in prompt
        assert "12-49 unidades: $24.000/u (Docena)" in prompt
        assert "50+ unidades: $20.000/u (Mayorista)" in prompt
        assert "- Logo (image) [REQUERIDO]" in prompt
        assert "Opciones: blanco, negro" in prompt

    def test_variants_listed_for_product_in_view(self, store):
        """Test that real variants are listed for the product in view."""
        agent = Agent(id="a1", organization_id="org_demo", name="Sofía")

        prompt = build_system_prompt(agent, "Tienda Demo", 3, current_product=store.products["prod_tshirt"])

        assert "talla: S, M, L | color: negro, blanco" in prompt


class TestContextBlocks:
    """Tests for the customer, cart and product blocks."""

    def test_unidentified_customer(self):
        """Test the instruction for anonymous customers."""
        assert "usa identify_customer" in build_customer_context(None)

    def test_customer_with_orders(self, store):
        """Test the customer summary with purchase history."""
        customer = store.customers["cust_demo"]
        orders = [store.orders["order_demo"]]

        context = build_customer_context(customer, orders)

        assert "Carlos Pérez" in context
        assert "Total: $90.000" in context
        assert "Estado: shipped" in context

    def test_customer_without_orders(self):
        """Test new customers."""
        customer = Customer(id="c1", organization_id="org_demo", email="ana@example.com")

        context = build_customer_context(customer, [])

        assert "No proporcionado" in context
        assert "cliente nuevo" in context

    def test_empty_cart(self):
        """Test the empty cart block."""
        assert build_cart_context(None) == "CARRITO ACTUAL: Vacío"
        assert build_cart_context(Cart(id="c", organization_id="o", conversation_id="v")) == "CARRITO ACTUAL: Vacío"

    def test_cart_with_items(self):
        """Test that cart lines and total are listed."""
        cart = Cart(
            id="c",
            organization_id="o",
            conversation_id="v",
            items=[LineItem(product_id="p", name="Camiseta", price=45000, quantity=2, variant="M")],
        )

        context = build_cart_context(cart)

        assert "- Camiseta (M) x2 = $90.000" in context
        assert context.endswith("Total: $90.000")

    def test_product_listing(self, store):
        """Test the full catalog listing."""
        listing = build_product_context(list(store.products.values()))

        assert "Camiseta Básica (ID: prod_tshirt)" in listing
        assert build_product_context([]) == "No hay productos disponibles actualmente."

    def test_format_price(self):
        """Test Colombian thousands separators."""
        assert format_price(1250000) == "$1.250.000"
        assert format_price(900) == "$900"


class TestConversationHistory:
    """Tests for history normalization."""

    def test_alternating_history(self):
        """Test plain alternation is preserved in order."""
        history = build_conversation_history(
            [message("user", "hola"), message("bot", "¡Hola! ¿En qué te ayudo?"), message("user", "camisetas")]
        )

        assert [m.role for m in history] == ["user", "assistant", "user"]
        assert history[-1].content == "camisetas"

    def test_leading_bot_messages_dropped(self):
        """Test that history always starts with the customer."""
        history = build_conversation_history([message("bot", "Bienvenido"), message("user", "hola")])

        assert [m.role for m in history] == ["user"]

    def test_consecutive_messages_merged_and_empty_dropped(self):
        """Test that same-side messages merge and blanks disappear."""
        history = build_conversation_history(
            [message("user", "hola"), message("user", "   "), message("user", "¿tienen gorras?"), message("bot", "Sí")]
        )

        assert len(history) == 2
        assert history[0].content == "hola\n\n¿tienen gorras?"

    def test_stored_inbound_message_dropped(self):
        """Test that an inbound message the caller already stored is removed before normalization."""
        stored = [message("bot", "¿Algo más?"), message("user", "quiero pagar")]

        assert without_stored_inbound(stored, "quiero pagar") == stored[:1]
        assert without_stored_inbound(stored, "otra cosa") == stored

    def test_unanswered_message_survives_failed_turn(self):
        """Test that an unanswered message and the new one are each sent once."""
        stored = [message("user", "busco camisetas"), message("user", "talla M")]

        history = build_conversation_history(without_stored_inbound(stored, "talla M"))
        result = append_user_message(history, "talla M")

        assert result == [LLMMessage(role="user", content="busco camisetas\n\ntalla M")]

    def test_inbound_message_appended(self):
        """Test that the inbound message ends the history."""
        history = [LLMMessage(role="user", content="hola"), LLMMessage(role="assistant", content="¡Hola!")]

        result = append_user_message(history, "quiero pagar")

        assert result[-1] == LLMMessage(role="user", content="quiero pagar")
        assert len(history) == 2

    def test_inbound_message_merged_after_user_turn(self):
        """Test that a different trailing user message is merged to keep alternation."""
        result = append_user_message([LLMMessage(role="user", content="hola")], "quiero pagar")

        assert result == [LLMMessage(role="user", content="hola\n\nquiero pagar")]
