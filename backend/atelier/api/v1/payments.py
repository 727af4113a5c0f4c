"""
Payment gateway webhook endpoint.

The gateway retries until it receives a 2xx, so results that cannot be
applied (unknown reference, replaced order, impossible transition) are
logged and acknowledged. Events are only accepted with a valid signature;
without a configured secret the endpoint answers 503.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError as PayloadValidationError

from atelier.api.deps import OrderService
from atelier.core.config import get_settings
from atelier.core.logging import get_logger
from atelier.core.security import verify_webhook_signature
from atelier.schemas.payments import PaymentWebhookPayload, WebhookAcknowledgement
from atelier.services.measurement_orders.errors import (
    ConflictError,
    NotFoundError,
    OrderPersistenceError,
    OrderReplacedError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

SIGNATURE_HEADER = "x-payment-signature"


@router.post(
    "/webhook",
    response_model=WebhookAcknowledgement,
    status_code=status.HTTP_200_OK,
    summary="Handle payment gateway webhook",
)
async def handle_payment_webhook(
    request: Request,
    service: OrderService,
    signature: Annotated[Optional[str], Header(alias=SIGNATURE_HEADER)] = None,
) -> WebhookAcknowledgement:
    """
    Apply a gateway payment result to its measurement order.

    Raises:
        HTTPException: 400 for a bad signature or payload, 503 if no
            webhook secret is configured, 500 if the result could not be
            stored
    """
    body = await request.body()

    secret = get_settings().payment_webhook_secret
    if not secret:
        logger.error("Webhook rejected, no payment webhook secret configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": "Payment webhook is not configured",
                "code": "WEBHOOK_NOT_CONFIGURED",
            },
        )

    if not verify_webhook_signature(body, signature, secret):
        logger.error("Webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid webhook signature", "code": "INVALID_SIGNATURE"},
        )

    try:
        payload = PaymentWebhookPayload.model_validate_json(body)
    except PayloadValidationError as e:
        logger.warning("Malformed webhook payload", error_count=e.error_count())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Malformed webhook payload", "code": "INVALID_PAYLOAD"},
        ) from e

    event = payload.event_data
    reference = event.transaction_reference
    result = event.result
    if result is None:
        logger.info(
            "Ignoring webhook with unhandled payment status",
            transaction_reference=reference,
            payment_status=event.payment_status,
        )
        return WebhookAcknowledgement(status="ignored")

    logger.info(
        "Received payment webhook",
        event_type=payload.event_type,
        transaction_reference=reference,
        result=result.value,
    )

    try:
        order = await service.apply_payment_result(
            reference,
            result,
            paid_at=event.paid_on,
            amount_paid=event.amount_paid,
        )
    except NotFoundError:
        logger.warning("Webhook for unknown transaction reference", transaction_reference=reference)
        return WebhookAcknowledgement(status="unknown_reference")
    except OrderReplacedError as e:
        logger.error(
            "Payment received for replaced measurement order",
            transaction_reference=reference,
            context=e.context,
        )
        return WebhookAcknowledgement(status="order_replaced")
    except ConflictError as e:
        logger.warning(
            "Webhook result conflicts with payment status",
            transaction_reference=reference,
            error=e.message,
        )
        return WebhookAcknowledgement(status="conflict")
    except OrderPersistenceError as e:
        logger.error(
            "Webhook processing failed",
            transaction_reference=reference,
            error=e.message,
            context=e.context,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to process webhook", "code": "WEBHOOK_PROCESSING_ERROR"},
        ) from e

    return WebhookAcknowledgement(
        status=order.payment_status.value,
        order_number=order.order_number,
    )
