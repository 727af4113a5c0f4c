"""
SQLAlchemy-backed measurement template catalog.
"""

import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger
from atelier.database.models.measurement_template import MeasurementTemplate
from atelier.services.measurement_orders.errors import OrderPersistenceError
from atelier.services.measurement_orders.ports import CatalogTemplate

logger = get_logger(__name__)


class SQLTemplateCatalog:
    """Template catalog over the ``measurement_templates`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_template_by_id(self, template_id: uuid.UUID) -> Optional[CatalogTemplate]:
        try:
            template = await self.session.get(MeasurementTemplate, template_id)
        except SQLAlchemyError as e:
            logger.error(
                "Template lookup failed",
                template_id=str(template_id),
                error=str(e),
            )
            raise OrderPersistenceError(
                "Failed to load measurement template",
                template_id=str(template_id),
                error=str(e),
            ) from e

        if template is None or not template.is_active:
            return None

        return CatalogTemplate(
            id=str(template.id),
            title=(template.title or "").strip(),
            fields=template.field_names,
        )
