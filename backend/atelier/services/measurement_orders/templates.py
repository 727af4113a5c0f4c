"""
Template and measurement resolution for order intake.

Each submitted line references a catalog template. The resolver checks the
template exists, drops measurement values that are not positive numbers and
verifies every field the template declares is still covered. The template
title is copied into the line so later catalog edits never rewrite history.
"""

import math
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from atelier.core.logging import get_logger
from atelier.services.measurement_orders.errors import (
    IncompleteMeasurementsError,
    NotFoundError,
    ValidationError,
)
from atelier.services.measurement_orders.ports import CatalogTemplate, TemplateCatalog

logger = get_logger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 10000
MAX_SAMPLE_IMAGES = 2


@dataclass(frozen=True)
class MeasurementValue:
    field_name: str
    value: float


@dataclass(frozen=True)
class ResolvedTemplateItem:
    """A validated order line with the template title snapshot."""

    template_id: str
    template_title: str
    quantity: int
    measurements: List[MeasurementValue]
    sample_image_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "template_title": self.template_title,
            "quantity": self.quantity,
            "measurements": [
                {"field_name": m.field_name, "value": m.value}
                for m in self.measurements
            ],
            "sample_image_urls": list(self.sample_image_urls),
        }


def coerce_measurement(value: Any) -> Optional[float]:
    """
    Return ``value`` as a positive float, or None if it should be dropped.

    Booleans, blanks, non-numeric strings, NaN/inf, zero and negatives are
    all dropped.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= 0:
        return None
    result = float(number)
    return result if math.isfinite(result) else None


class TemplateResolver:
    """Validates submitted template lines against the catalog."""

    def __init__(self, catalog: TemplateCatalog):
        self.catalog = catalog

    async def resolve(self, submissions: Iterable[Any]) -> List[ResolvedTemplateItem]:
        """
        Resolve every submitted line.

        Problems on every line are collected and reported together; a
        missing template stops resolution immediately.

        Raises:
            ValidationError: No lines, or any malformed id, quantity or image
                list, listing every problem found
            NotFoundError: A referenced template does not exist
            IncompleteMeasurementsError: Listing every missing measurement
        """
        submissions = list(submissions or [])
        if not submissions:
            raise ValidationError(
                "At least one measurement template is required",
                violations=["At least one measurement template is required"],
            )

        resolved: List[ResolvedTemplateItem] = []
        errors: List[ValidationError] = []

        for submission in submissions:
            try:
                template = await self._load_template(getattr(submission, "template_id", None))
                resolved.append(self.resolve_item(template, submission))
            except ValidationError as e:
                errors.append(e)

        if errors:
            violations = [violation for error in errors for violation in error.violations]
            logger.info(
                "Measurement submission invalid",
                violation_count=len(violations),
            )
            if all(isinstance(error, IncompleteMeasurementsError) for error in errors):
                raise IncompleteMeasurementsError(violations[0], violations=violations)
            raise ValidationError(violations[0], violations=violations)

        return resolved

    def resolve_item(
        self, template: CatalogTemplate, submission: Any
    ) -> ResolvedTemplateItem:
        """Build one line from a loaded template and its submission."""
        quantity = getattr(submission, "quantity", None)
        if quantity is None:
            quantity = MIN_QUANTITY
        if not isinstance(quantity, int) or not MIN_QUANTITY <= quantity <= MAX_QUANTITY:
            raise ValidationError(
                f"Quantity for template \"{template.title}\" must be between "
                f"{MIN_QUANTITY} and {MAX_QUANTITY}",
                template_id=template.id,
            )

        images = list(getattr(submission, "sample_image_urls", None) or [])
        if len(images) > MAX_SAMPLE_IMAGES:
            raise ValidationError(
                f"At most {MAX_SAMPLE_IMAGES} sample images are allowed per template",
                template_id=template.id,
            )

        measurements: List[MeasurementValue] = []
        for raw in getattr(submission, "measurements", None) or []:
            field_name = str(getattr(raw, "field_name", "") or "").strip()
            value = coerce_measurement(getattr(raw, "value", None))
            if field_name and value is not None:
                measurements.append(MeasurementValue(field_name=field_name, value=value))

        if not measurements:
            message = (
                f"At least one valid measurement is required for template "
                f"\"{template.title}\""
            )
            raise IncompleteMeasurementsError(message, template_id=template.id)

        provided = {m.field_name for m in measurements}
        missing = [name for name in template.fields if name not in provided]
        if missing:
            violations = [
                f"Measurement for \"{name}\" is required for template \"{template.title}\""
                for name in missing
            ]
            raise IncompleteMeasurementsError(
                violations[0],
                violations=violations,
                template_id=template.id,
            )

        return ResolvedTemplateItem(
            template_id=template.id,
            template_title=template.title,
            quantity=quantity,
            measurements=measurements,
            sample_image_urls=images,
        )

    async def _load_template(self, raw_id: Any) -> CatalogTemplate:
        try:
            template_id = raw_id if isinstance(raw_id, uuid.UUID) else uuid.UUID(str(raw_id))
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid measurement template ID: {raw_id}",
                template_id=str(raw_id),
            ) from e

        template = await self.catalog.get_template_by_id(template_id)
        if template is None or not template.id or not (template.title or "").strip():
            logger.warning("Measurement template not found", template_id=str(template_id))
            raise NotFoundError(
                f"Measurement template with ID {template_id} not found",
                template_id=str(template_id),
            )
        return template
