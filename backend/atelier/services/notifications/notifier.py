"""
Customer notifications for measurement orders.

Renders the price-quote and payment-confirmation emails and hands them to
SES. Every failure surfaces as ``NotificationServiceError`` so callers can
log it without affecting the committed order.
"""

import asyncio
from typing import Any, Optional

from botocore.exceptions import BotoCoreError

from atelier.core.config import Settings, get_settings
from atelier.core.logging import get_logger
from atelier.services.notifications.aws_clients import SESClient, SESClientError
from atelier.services.notifications.templates import TemplateEngine, TemplateEngineError

logger = get_logger(__name__)

PRICE_QUOTE_TEMPLATE = "price_quote"
PAYMENT_CONFIRMATION_TEMPLATE = "payment_confirmation"


class NotificationServiceError(Exception):
    """Raised when a customer notification cannot be delivered."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class MeasurementOrderNotifier:
    """Sends measurement order emails through SES."""

    def __init__(
        self,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._ses_client = ses_client
        self.template_engine = template_engine or TemplateEngine()

    @property
    def ses_client(self) -> SESClient:
        if self._ses_client is None:
            self._ses_client = SESClient()
        return self._ses_client

    def payment_link(self, order: Any) -> str:
        """Guests pay from a public order page; account holders from their account."""
        base = self.settings.storefront_base_url
        if order.is_guest:
            return f"{base}/pay-measurement-order/{order.order_number}"
        return f"{base}/account?tab=orders"

    async def send_price_quote(self, order: Any) -> None:
        context = self._base_context(order)
        context["payment_link"] = self.payment_link(order)
        await self._send(PRICE_QUOTE_TEMPLATE, order, context)

    async def send_payment_confirmation(self, order: Any) -> None:
        context = self._base_context(order)
        context["paid_at"] = order.paid_at.strftime("%B %d, %Y") if order.paid_at else ""
        await self._send(PAYMENT_CONFIRMATION_TEMPLATE, order, context)

    def _base_context(self, order: Any) -> dict[str, Any]:
        price = order.price or 0
        delivery_fee = order.delivery_fee or 0
        tax = order.tax or 0
        return {
            "customer_name": order.name,
            "order_number": order.order_number,
            "templates": order.templates or [],
            "shipping_location": order.shipping_location,
            "price": price,
            "delivery_fee": delivery_fee,
            "tax": tax,
            "total": price + delivery_fee + tax,
        }

    async def _send(self, template_name: str, order: Any, context: dict[str, Any]) -> None:
        if not self.settings.notifications_enabled:
            logger.info(
                "Notifications disabled, skipping email",
                template=template_name,
                order_number=order.order_number,
            )
            return

        try:
            rendered = self.template_engine.render_email(template_name, context)
            await asyncio.to_thread(
                self.ses_client.send_email,
                to_addresses=[order.email],
                subject=rendered["subject"],
                body_text=rendered.get("text_body") or rendered["subject"],
                body_html=rendered["html_body"],
            )
        except (TemplateEngineError, SESClientError, BotoCoreError) as e:
            raise NotificationServiceError(
                f"Failed to send {template_name} email",
                order_number=order.order_number,
                error=str(e),
            ) from e
