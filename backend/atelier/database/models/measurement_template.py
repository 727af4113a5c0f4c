"""
Measurement template model.

A template names the measurement fields a garment needs, e.g. a
"Senator Top" declares chest, waist and length.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel, JSONType


class MeasurementTemplate(BaseModel):
    """Catalog template with its declared measurement fields."""

    __tablename__ = "measurement_templates"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fields: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment='Declared fields as [{"name": ..., "unit": ...}]',
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = ({"comment": "Measurement template catalog"},)

    @property
    def field_names(self) -> List[str]:
        return [
            str(field["name"]).strip()
            for field in self.fields or []
            if isinstance(field, dict) and str(field.get("name") or "").strip()
        ]
