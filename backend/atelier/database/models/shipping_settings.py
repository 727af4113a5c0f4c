"""
Shipping settings model.

Single-row read model maintained by the admin console. Location fees are a
list of ``{"location": str, "fee": number}`` entries.
"""

from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import Numeric
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel, JSONType


class ShippingSettingsRecord(BaseModel):
    """Delivery fees per location and the free-shipping threshold."""

    __tablename__ = "shipping_settings"

    location_fees: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    free_shipping_threshold: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    __table_args__ = ({"comment": "Shipping fee configuration"},)
