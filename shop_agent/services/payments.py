"""Payment link service interface and implementations."""

from typing import Protocol

from shop_agent.models.commerce import Order, ShippingInfo
from shop_agent.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentLinkService(Protocol):
    """Interface to the checkout/payment gateway integration."""

    async def create_payment_link(self, order: Order, payer: ShippingInfo) -> str:
        """Create a hosted payment page for an order.

        Args:
            order: The pending order to collect
            payer: Billing details of the customer

        Returns:
            URL the customer opens to pay
        """
        ...


class MockPaymentLinkService:
    """Payment link service for local development.

    Builds deterministic checkout URLs without calling a gateway.
    """

    def __init__(self, base_url: str = "https://pagos.tiendademo.co/checkout"):
        self.base_url = base_url.rstrip("/")

    async def create_payment_link(self, order: Order, payer: ShippingInfo) -> str:
        url = f"{self.base_url}/{order.id}"
        logger.info(f"Generated payment link for order {order.id} (total {order.total:.0f})")
        return url
