"""
Database models package initialization.

Models are imported here so they register with ``Base.metadata`` for table
creation and Alembic autogeneration.
"""

from atelier.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from atelier.database.models.account import AccountRole, CustomerAccount
from atelier.database.models.measurement_order import MeasurementOrder
from atelier.database.models.measurement_template import MeasurementTemplate
from atelier.database.models.shipping_settings import ShippingSettingsRecord

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "AccountRole",
    "CustomerAccount",
    "MeasurementOrder",
    "MeasurementTemplate",
    "ShippingSettingsRecord",
]
