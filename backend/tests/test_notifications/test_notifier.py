"""
Tests for measurement order customer notifications.
"""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import pytest

from atelier.services.notifications.aws_clients import SESClientError
from atelier.services.notifications.notifier import (
    MeasurementOrderNotifier,
    NotificationServiceError,
)
from atelier.services.notifications.templates import (
    TemplateEngine,
    TemplateNotFoundError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Mock:
    """Settings with notifications switched on."""
    settings = Mock()
    settings.notifications_enabled = True
    settings.storefront_base_url = "https://shop.test"
    return settings


@pytest.fixture
def ses_client() -> MagicMock:
    client = MagicMock()
    client.send_email.return_value = {"message_id": "msg-1", "status": "sent"}
    return client


@pytest.fixture
def notifier(ses_client, settings) -> MeasurementOrderNotifier:
    """
    Create notifier rendering the packaged templates.

    Returns:
        MeasurementOrderNotifier with a mocked SES client
    """
    return MeasurementOrderNotifier(ses_client=ses_client, settings=settings)


@pytest.fixture
def order() -> SimpleNamespace:
    """Priced guest order."""
    return SimpleNamespace(
        order_number="MSO-20260314-ABC123",
        is_guest=True,
        name="Chidi Eze",
        email="chidi@example.com",
        templates=[{"template_title": "Senator Top", "quantity": 2}],
        shipping_location="Lagos",
        price=Decimal("15000.00"),
        delivery_fee=Decimal("1000.00"),
        tax=Decimal("1200.00"),
        paid_at=None,
    )


# ============================================================================
# Template Tests
# ============================================================================


class TestTemplateEngine:
    """Test the packaged email templates."""

    def test_price_quote_renders(self):
        rendered = TemplateEngine().render_email(
            "price_quote",
            {
                "customer_name": "Ada",
                "order_number": "MSO-20260314-ABC123",
                "templates": [{"template_title": "Senator Top", "quantity": 1}],
                "shipping_location": "Lagos",
                "price": Decimal("15000"),
                "delivery_fee": Decimal("1000"),
                "tax": Decimal("1200"),
                "total": Decimal("17200"),
                "payment_link": "https://shop.test/pay",
            },
        )

        assert "MSO-20260314-ABC123" in rendered["subject"]
        assert "₦17,200.00" in rendered["text_body"]
        assert "https://shop.test/pay" in rendered["html_body"]

    def test_missing_template(self):
        with pytest.raises(TemplateNotFoundError):
            TemplateEngine().render_email("does_not_exist", {})


# ============================================================================
# Notifier Tests
# ============================================================================


class TestMeasurementOrderNotifier:
    """Test notification dispatch."""

    def test_guest_payment_link(self, notifier, order):
        assert (
            notifier.payment_link(order)
            == "https://shop.test/pay-measurement-order/MSO-20260314-ABC123"
        )

    def test_account_payment_link(self, notifier, order):
        order.is_guest = False

        assert notifier.payment_link(order) == "https://shop.test/account?tab=orders"

    @pytest.mark.asyncio
    async def test_price_quote_sent(self, notifier, ses_client, order):
        await notifier.send_price_quote(order)

        kwargs = ses_client.send_email.call_args.kwargs
        assert kwargs["to_addresses"] == ["chidi@example.com"]
        assert "MSO-20260314-ABC123" in kwargs["subject"]
        assert "/pay-measurement-order/MSO-20260314-ABC123" in kwargs["body_text"]
        assert "Senator Top" in kwargs["body_html"]

    @pytest.mark.asyncio
    async def test_payment_confirmation_sent(self, notifier, ses_client, order):
        order.paid_at = datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)

        await notifier.send_payment_confirmation(order)

        kwargs = ses_client.send_email.call_args.kwargs
        assert "March 14, 2026" in kwargs["body_text"]
        assert "₦17,200.00" in kwargs["body_text"]

    @pytest.mark.asyncio
    async def test_disabled_notifications_skip(self, notifier, ses_client, settings, order):
        settings.notifications_enabled = False

        await notifier.send_price_quote(order)

        ses_client.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_ses_failure_wrapped(self, notifier, ses_client, order):
        ses_client.send_email.side_effect = SESClientError("throttled")

        with pytest.raises(NotificationServiceError) as exc_info:
            await notifier.send_price_quote(order)

        assert exc_info.value.context["order_number"] == "MSO-20260314-ABC123"
