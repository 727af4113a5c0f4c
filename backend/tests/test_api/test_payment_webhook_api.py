"""
API tests for the payment gateway webhook.
"""

import json
from decimal import Decimal
from typing import Optional
from unittest.mock import Mock, patch

import pytest

from atelier.core.security import compute_webhook_signature
from atelier.schemas.measurement_orders import MeasurementOrderCreate
from atelier.services.measurement_orders.enums import MeasurementOrderStatus, PaymentStatus
from atelier.services.measurement_orders.service import build_measurement_order_service

API = "/api/v1"
WEBHOOK = f"{API}/payments/webhook"
WEBHOOK_SECRET = "whsec-test"


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
async def priced_order(client, db_session, make_template, make_shipping_settings):
    """
    Create a priced guest order with checkout initialized as TXN-1.

    Returns:
        MeasurementOrder: The payable order
    """
    await make_shipping_settings()
    template = await make_template(fields=("inseam",))
    service = build_measurement_order_service(db_session)
    order = await service.create_order(
        MeasurementOrderCreate(
            templates=[
                {
                    "template_id": str(template.id),
                    "measurements": [{"field_name": "inseam", "value": 31}],
                }
            ],
            shipping_location="Lagos",
            name="Chidi Eze",
            email="chidi@example.com",
            phone="+2348098765432",
            address="4 Allen Avenue",
            city="Ikeja",
            state="Lagos",
            zip_code="100271",
            country="Nigeria",
        )
    )
    await service.set_price(order.id, Decimal("15000"), "staff@atelier.test")
    return await service.initialize_checkout(order.order_number, "TXN-1")


def event(status: str, reference: str = "TXN-1", amount_paid: str = "17200.00") -> dict:
    return {
        "eventType": "SUCCESSFUL_TRANSACTION",
        "eventData": {
            "transactionReference": reference,
            "paymentReference": "MSO-REF",
            "paymentStatus": status,
            "amountPaid": amount_paid,
            "paidOn": "2026-03-14T10:00:00+00:00",
        },
    }


async def send(
    client,
    payload,
    secret: Optional[str] = WEBHOOK_SECRET,
    signature: Optional[str] = None,
):
    """Post a webhook body signed with ``secret`` unless a signature is given."""
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    headers = {"content-type": "application/json"}
    if secret is not None:
        headers["x-payment-signature"] = signature or compute_webhook_signature(body, secret)
    return await client.post(WEBHOOK, content=body, headers=headers)


# ============================================================================
# Webhook Tests
# ============================================================================


class TestPaymentWebhook:
    """Test gateway result handling over HTTP."""

    @pytest.mark.asyncio
    async def test_paid_event(self, client, priced_order, notifier):
        response = await send(client, event("PAID"))

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "status": "paid",
            "order_number": priced_order.order_number,
        }
        assert priced_order.payment_status == PaymentStatus.PAID
        assert priced_order.status == MeasurementOrderStatus.DESIGN_REVIEW
        notifier.send_payment_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_event_acknowledged(self, client, priced_order, notifier):
        await send(client, event("PAID"))
        response = await send(client, event("paid"))

        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        notifier.send_payment_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_short_payment_still_applied(self, client, priced_order):
        response = await send(client, event("PAID", amount_paid="100.00"))

        assert response.status_code == 200
        assert response.json()["status"] == "paid"

    @pytest.mark.asyncio
    async def test_failed_event(self, client, priced_order):
        response = await send(client, event("EXPIRED"))

        assert response.json()["status"] == "failed"
        assert priced_order.status == MeasurementOrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unhandled_status_ignored(self, client, priced_order):
        response = await send(client, event("PENDING"))

        assert response.json()["status"] == "ignored"
        assert priced_order.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_reference(self, client):
        response = await send(client, event("PAID", reference="TXN-NONE"))

        assert response.status_code == 200
        assert response.json()["status"] == "unknown_reference"

    @pytest.mark.asyncio
    async def test_replaced_order_payment_acknowledged(
        self, client, db_session, priced_order
    ):
        service = build_measurement_order_service(db_session)
        await service.set_price(priced_order.id, Decimal("18000"), "staff@atelier.test")

        response = await send(client, event("PAID"))

        assert response.status_code == 200
        assert response.json()["status"] == "order_replaced"
        original = await service.get_order(priced_order.id)
        assert original.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_malformed_payload(self, client):
        response = await send(client, b"{not json")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"


class TestWebhookSignature:
    """Test HMAC verification of webhook bodies."""

    @pytest.fixture
    def unconfigured_settings(self):
        settings = Mock()
        settings.payment_webhook_secret = None
        settings.environment = "production"
        with patch("atelier.api.v1.payments.get_settings", return_value=settings):
            yield settings

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, client, priced_order):
        response = await send(client, event("PAID"), signature="deadbeef")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"
        assert priced_order.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unsigned_event_rejected(self, client, priced_order):
        response = await send(client, event("PAID"), secret=None)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"
        assert priced_order.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self, client, priced_order):
        response = await send(client, event("PAID"), secret="whsec-other")

        assert response.status_code == 400
        assert priced_order.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_secret_fails_closed(
        self, client, priced_order, unconfigured_settings, notifier
    ):
        response = await send(client, event("PAID"), secret=None)

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "WEBHOOK_NOT_CONFIGURED"
        assert priced_order.payment_status == PaymentStatus.PENDING
        notifier.send_payment_confirmation.assert_not_called()
