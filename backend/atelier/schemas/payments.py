"""
Payment gateway webhook schemas.

The gateway posts an event envelope whose ``eventData`` carries the
transaction reference and the gateway's own status vocabulary.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from atelier.services.measurement_orders.enums import GATEWAY_STATUS_MAP, PaymentResult


class WebhookEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_reference: str = Field(..., alias="transactionReference", min_length=1)
    payment_reference: Optional[str] = Field(None, alias="paymentReference")
    payment_status: str = Field(..., alias="paymentStatus", min_length=1)
    amount_paid: Optional[Decimal] = Field(None, alias="amountPaid")
    paid_on: Optional[datetime] = Field(None, alias="paidOn")

    @property
    def result(self) -> Optional[PaymentResult]:
        """Gateway status mapped to a payment result, None when unrecognised."""
        return GATEWAY_STATUS_MAP.get(self.payment_status.strip().upper())


class PaymentWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: Optional[str] = Field(None, alias="eventType")
    event_data: WebhookEventData = Field(..., alias="eventData")


class WebhookAcknowledgement(BaseModel):
    received: bool = True
    status: str
    order_number: Optional[str] = None
