"""
Measurement order Pydantic schemas for API request/response validation.

Intake schemas enforce field shapes only. Whether a guest supplied every
required field, and whether measurements cover a template, is decided by
the service so violations can be reported together.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentStatus,
)

E164_PATTERN = re.compile(r"^\+[1-9]\d{9,14}$")


class MeasurementInput(BaseModel):
    """A single measurement for a template field."""

    model_config = ConfigDict(str_strip_whitespace=True)

    field_name: str = Field(..., min_length=1, max_length=100)
    value: Optional[float] = Field(
        None,
        ge=0,
        description="Measurement value; zero or blank values are ignored",
    )


class TemplateSubmission(BaseModel):
    """One order line referencing a catalog template."""

    model_config = ConfigDict(str_strip_whitespace=True)

    template_id: str = Field(..., min_length=1, description="Measurement template ID")
    quantity: int = Field(default=1, ge=1, le=10000)
    measurements: list[MeasurementInput] = Field(default_factory=list)
    sample_image_urls: list[str] = Field(
        default_factory=list,
        max_length=2,
        description="Up to two reference image URLs",
    )


class MeasurementOrderCreate(BaseModel):
    """
    Measurement order intake.

    Account holders send templates and shipping details only; their
    personal information comes from their profile. Guests also send
    personal information and may ask for an account to be created.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    templates: list[TemplateSubmission] = Field(..., min_length=1)
    shipping_location: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)
    preferred_style: Optional[str] = Field(None, max_length=200)
    payment_method: Optional[str] = Field(None, max_length=50)

    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=101)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, description="E.164 phone number")
    address: Optional[str] = Field(None, min_length=5, max_length=500)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)
    zip_code: Optional[str] = Field(None, min_length=3, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=100)

    create_account: bool = False
    password: Optional[str] = Field(None, min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        """Validate email format."""
        if v is None or v == "":
            return None
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email format")
        return v.lower()

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: Optional[str]) -> Optional[str]:
        """Require international E.164 format, e.g. +2348012345678."""
        if v is None or v == "":
            return None
        compact = re.sub(r"[\s\-()]", "", v)
        if not E164_PATTERN.match(compact):
            raise ValueError(
                "Phone number must be in international format, e.g. +2348012345678"
            )
        return compact


class MeasurementResponse(BaseModel):
    field_name: str
    value: float


class TemplateLineResponse(BaseModel):
    template_id: str
    template_title: str
    quantity: int
    measurements: list[MeasurementResponse]
    sample_image_urls: list[str] = Field(default_factory=list)


class MeasurementOrderResponse(BaseModel):
    """Measurement order as returned to customers and staff."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: Optional[UUID] = None
    is_guest: bool
    guest_email: Optional[str] = None

    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    templates: list[TemplateLineResponse]
    notes: Optional[str] = None
    preferred_style: Optional[str] = None

    status: MeasurementOrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    payment_url: Optional[str] = None

    price: Optional[Decimal] = None
    price_set_at: Optional[datetime] = None
    price_set_by: Optional[str] = None
    shipping_location: str
    delivery_fee: Optional[Decimal] = None
    tax: Optional[Decimal] = None

    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    is_replaced: bool
    replaced_by_order_id: Optional[UUID] = None
    original_order_id: Optional[UUID] = None

    created_at: datetime
    updated_at: datetime


class PaginationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(..., alias="totalPages")
    has_next_page: bool = Field(..., alias="hasNextPage")
    has_prev_page: bool = Field(..., alias="hasPrevPage")


class MeasurementOrderListResponse(BaseModel):
    orders: list[MeasurementOrderResponse]
    pagination: PaginationResponse


class PaymentSummaryResponse(BaseModel):
    order_number: str
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal
    payment_status: PaymentStatus
    is_payable: bool


class MeasurementOrderDetailResponse(BaseModel):
    order: MeasurementOrderResponse
    payment_summary: PaymentSummaryResponse


class SetPriceRequest(BaseModel):
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class SetPriceResponse(BaseModel):
    """Result of a price assignment; ``order`` is always the payable order."""

    order: MeasurementOrderResponse
    replaced: bool
    original_order_id: Optional[UUID] = None
    free_shipping_applied: bool = False
    message: str


class StatusUpdateRequest(BaseModel):
    status: MeasurementOrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return MeasurementOrderStatus.from_string(v)
        return v


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    transaction_reference: str = Field(..., min_length=1, max_length=255)
    payment_url: Optional[str] = Field(None, max_length=2048)
    payment_reference: Optional[str] = Field(None, max_length=255)
    gateway_payment_reference: Optional[str] = Field(None, max_length=255)
