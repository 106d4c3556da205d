"""Tests for tenant scoping in the in-memory commerce store."""

import pytest

from shop_agent.models.commerce import LineItem, ShippingInfo


class TestConversationWrites:
    """Tests for writes keyed by conversation id."""

    @pytest.mark.asyncio
    async def test_link_customer_requires_owning_tenant(self, store):
        """Test that a customer cannot be linked through another tenant."""
        assert await store.link_customer("org_other", "conv_demo", "cust_demo") is False
        assert store.conversations["conv_demo"].customer_id is None

        assert await store.link_customer("org_demo", "conv_demo", "cust_demo") is True
        assert store.conversations["conv_demo"].customer_id == "cust_demo"

    @pytest.mark.asyncio
    async def test_status_update_requires_owning_tenant(self, store):
        """Test that another tenant cannot change the conversation status."""
        assert await store.update_conversation_status("org_other", "conv_demo", "pending") is False
        assert store.conversations["conv_demo"].status == "active"

    @pytest.mark.asyncio
    async def test_shipping_details_require_owning_tenant(self, store):
        """Test that shipping details stay within the tenant."""
        details = ShippingInfo(
            full_name="Ana Gómez", phone="3109876543", address="Calle 1 # 2-3", city="Cali", document_number="123456"
        )

        assert await store.save_shipping_details("org_other", "conv_demo", details) is False
        assert store.conversations["conv_demo"].shipping_details is None

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, store):
        """Test that writes to a missing conversation report failure."""
        assert await store.link_customer("org_demo", "conv_missing", "cust_demo") is False


class TestMessages:
    """Tests for message reads and writes."""

    @pytest.mark.asyncio
    async def test_insert_requires_owning_tenant(self, store):
        """Test that messages cannot be written into another tenant's conversation."""
        with pytest.raises(LookupError):
            await store.insert_message("org_other", "conv_demo", "bot", "hola")

        assert store.messages["conv_demo"] == []

    @pytest.mark.asyncio
    async def test_recent_messages_hidden_from_other_tenants(self, store):
        """Test that history is only readable by the owning tenant."""
        await store.insert_message("org_demo", "conv_demo", "user", "mi cedula es 1020304050")

        assert await store.get_recent_messages("org_other", "conv_demo") == []
        recent = await store.get_recent_messages("org_demo", "conv_demo")
        assert [m.content for m in recent] == ["mi cedula es 1020304050"]

    @pytest.mark.asyncio
    async def test_recent_messages_newest_first(self, store):
        """Test ordering and limit."""
        for text in ("uno", "dos", "tres"):
            await store.insert_message("org_demo", "conv_demo", "user", text)

        recent = await store.get_recent_messages("org_demo", "conv_demo", limit=2)

        assert [m.content for m in recent] == ["tres", "dos"]


class TestOrderAndCartWrites:
    """Tests for order and cart writes."""

    @pytest.mark.asyncio
    async def test_order_status_requires_owning_tenant(self, store):
        """Test that another tenant cannot cancel an order."""
        await store.set_order_status("org_other", "order_demo", "cancelled")
        assert store.orders["order_demo"].status == "shipped"

        await store.set_order_status("org_demo", "order_demo", "delivered")
        assert store.orders["order_demo"].status == "delivered"

    @pytest.mark.asyncio
    async def test_cart_items_require_owning_tenant(self, store):
        """Test that another tenant cannot rewrite a cart."""
        items = [LineItem(product_id="prod_mug", name="Mug Personalizado", price=28000, quantity=1)]

        with pytest.raises(LookupError):
            await store.save_cart_items("org_other", "cart_demo", items)

        assert store.carts["cart_demo"].items == []
