"""
Shipping settings provider.

Reads the most recent shipping settings row. Database failures surface as
``DependencyDegraded`` so pricing can fall back instead of failing.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger
from atelier.database.models.shipping_settings import ShippingSettingsRecord
from atelier.services.measurement_orders.errors import DependencyDegraded
from atelier.services.measurement_orders.ports import LocationFee, ShippingConfig

logger = get_logger(__name__)


def parse_location_fees(raw: List[Dict[str, Any]]) -> List[LocationFee]:
    """Parse stored location fees, skipping malformed entries."""
    fees: List[LocationFee] = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        location = str(entry.get("location") or "").strip()
        try:
            fee = Decimal(str(entry.get("fee")))
        except (InvalidOperation, ValueError):
            fee = None
        if not location or fee is None or not fee.is_finite() or fee < 0:
            logger.warning("Skipping malformed location fee", entry=entry)
            continue
        fees.append(LocationFee(location=location, fee=fee))
    return fees


class SQLShippingSettingsProvider:
    """Shipping settings over the ``shipping_settings`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_settings(self) -> ShippingConfig:
        """
        Load current settings; defaults to no fees and no threshold.

        Raises:
            DependencyDegraded: If the settings cannot be read
        """
        stmt = (
            select(ShippingSettingsRecord)
            .order_by(ShippingSettingsRecord.updated_at.desc())
            .limit(1)
        )
        try:
            async with self.session.begin_nested():
                record = (await self.session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DependencyDegraded(
                "Shipping settings could not be loaded",
                dependency="shipping_settings",
                error=str(e),
            ) from e

        if record is None:
            return ShippingConfig()

        return ShippingConfig(
            location_fees=parse_location_fees(record.location_fees),
            free_shipping_threshold=Decimal(record.free_shipping_threshold or 0),
        )
