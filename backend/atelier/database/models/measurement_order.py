"""
Measurement order model.

A measurement order is created without a price. Customer details and
template titles are stored as snapshots taken at creation (or replacement)
time and are never re-synced from the account or the catalog.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel, JSONType, enum_column
from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentStatus,
)


class MeasurementOrder(BaseModel):
    """
    Made-to-measure order with price assignment and replacement chain.

    Attributes:
        order_number: Unique human-readable identifier
        user_id: Owning account, set for account orders only
        is_guest: True when the order is not linked to an account
        guest_email: Contact email captured for guest orders
        templates: Line items, each a snapshot of the template it references
        price: Staff-assigned price, NULL until first assignment
        delivery_fee: Fee for the shipping location at pricing time
        tax: VAT on price plus delivery fee, NULL until priced
        is_replaced: True once a reprice superseded this order
        replaced_by_order_id: Forward pointer to the replacement order
        original_order_id: Back pointer to the order this one replaced
    """

    __tablename__ = "measurement_orders"

    order_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Human-readable order number",
    )

    # Origin
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("customer_accounts.id"),
        nullable=True,
        comment="Owning customer account",
    )
    is_guest: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Order placed without an account",
    )
    guest_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Lowercased guest contact email",
    )

    # Customer snapshot
    name: Mapped[str] = mapped_column(String(101), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)

    # Line items
    templates: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        comment="Template line items with measurement snapshots",
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_style: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Status
    status: Mapped[MeasurementOrderStatus] = mapped_column(
        enum_column(MeasurementOrderStatus, "measurement_order_status"),
        nullable=False,
        default=MeasurementOrderStatus.ORDER_RECEIVED,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "measurement_payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)

    # Gateway correlation
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transaction_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Gateway transaction reference used by webhooks",
    )
    gateway_payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    payment_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Commercial
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    price_set_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    price_set_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Staff identity that assigned the price",
    )
    shipping_location: Mapped[str] = mapped_column(String(100), nullable=False)
    delivery_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tax: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Lifecycle timestamps
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Replacement chain
    is_replaced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    replaced_by_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("measurement_orders.id"),
        nullable=True,
    )
    original_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("measurement_orders.id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND is_guest = false AND guest_email IS NULL) "
            "OR (user_id IS NULL AND is_guest = true AND guest_email IS NOT NULL)",
            name="ck_measurement_orders_single_origin",
        ),
        CheckConstraint(
            "price IS NULL OR price >= 0",
            name="ck_measurement_orders_price_non_negative",
        ),
        CheckConstraint(
            "delivery_fee IS NULL OR delivery_fee >= 0",
            name="ck_measurement_orders_delivery_fee_non_negative",
        ),
        CheckConstraint(
            "tax IS NULL OR tax >= 0",
            name="ck_measurement_orders_tax_non_negative",
        ),
        CheckConstraint(
            "NOT (is_replaced = true AND payment_status = 'paid')",
            name="ck_measurement_orders_replaced_never_paid",
        ),
        Index("ix_measurement_orders_order_number", "order_number", unique=True),
        Index(
            "uq_measurement_orders_transaction_reference",
            "transaction_reference",
            unique=True,
            postgresql_where=text("transaction_reference IS NOT NULL"),
            sqlite_where=text("transaction_reference IS NOT NULL"),
        ),
        Index("ix_measurement_orders_user_id", "user_id"),
        Index("ix_measurement_orders_status", "status"),
        Index("ix_measurement_orders_created_at", "created_at"),
        {"comment": "Made-to-measure orders and their replacement chain"},
    )

    @property
    def is_priced(self) -> bool:
        """Check if a non-zero price has been assigned."""
        return self.price is not None and self.price > 0

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def total_amount(self) -> Optional[Decimal]:
        """Price plus delivery fee plus tax, or None while unpriced."""
        if self.price is None:
            return None
        return (
            Decimal(self.price)
            + Decimal(self.delivery_fee or 0)
            + Decimal(self.tax or 0)
        )
