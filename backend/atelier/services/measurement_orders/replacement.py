"""
Price assignment with replace-instead-of-mutate semantics.

Once a customer has seen a price, and possibly a payment link, that price
must not change underneath them. The first assignment prices the order in
place. Every later assignment leaves the order untouched, issues a brand-new
order carrying the new price, and cancels the original with a pointer to
its replacement.

    Unpriced --set--> Priced --set--> Replaced (new order: Priced)
        \\               \\
         +---- paid -----+--> Paid (price final)
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from atelier.core.logging import get_logger
from atelier.database.models.measurement_order import MeasurementOrder
from atelier.services.measurement_orders.enums import MeasurementOrderStatus, PaymentStatus
from atelier.services.measurement_orders.errors import ConflictError, NotFoundError
from atelier.services.measurement_orders.lifecycle import OrderLifecycle
from atelier.services.measurement_orders.order_number import OrderNumberGenerator
from atelier.services.measurement_orders.pricing import PriceQuote, PricingEngine
from atelier.services.measurement_orders.repository import MeasurementOrderRepository

logger = get_logger(__name__)

REPLACEMENT_CANCELLATION_REASON = (
    "Order replaced after price update. A new receipt has been generated."
)

# Copied from the original onto its replacement; everything else resets.
CARRIED_OVER_FIELDS = (
    "user_id",
    "is_guest",
    "guest_email",
    "name",
    "email",
    "phone",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
    "templates",
    "notes",
    "preferred_style",
    "shipping_location",
    "payment_method",
)


class PriceAssignment(str, enum.Enum):
    IN_PLACE = "in_place"
    REPLACED = "replaced"


@dataclass(frozen=True)
class PriceChangeResult:
    """
    Outcome of a set-price command.

    ``order`` is always the order the customer should pay: the same order
    for in-place pricing, the replacement otherwise.
    """

    order: MeasurementOrder
    assignment: PriceAssignment
    quote: PriceQuote
    original_order: Optional[MeasurementOrder] = None

    @property
    def replaced(self) -> bool:
        return self.assignment is PriceAssignment.REPLACED


def build_replacement_values(
    original: Any,
    quote: PriceQuote,
    set_by: str,
    set_at: datetime,
) -> Dict[str, Any]:
    """Column values for the replacement of ``original``."""
    values: Dict[str, Any] = {name: getattr(original, name) for name in CARRIED_OVER_FIELDS}
    values["templates"] = [dict(item) for item in original.templates or []]
    values.update(
        status=MeasurementOrderStatus.ORDER_RECEIVED,
        payment_status=PaymentStatus.PENDING,
        price=quote.price,
        delivery_fee=quote.delivery_fee,
        tax=quote.tax,
        price_set_at=set_at,
        price_set_by=set_by,
        is_replaced=False,
    )
    return values


@dataclass(frozen=True)
class PricePlan:
    """A checked price request: the order as read and its computed quote."""

    order: MeasurementOrder
    quote: PriceQuote


class ReplacementOrchestrator:
    """Decides between in-place pricing and replacement, then writes it."""

    def __init__(
        self,
        repository: MeasurementOrderRepository,
        pricing: PricingEngine,
        lifecycle: OrderLifecycle,
        number_generator: OrderNumberGenerator,
        max_number_attempts: int = 5,
    ):
        self.repository = repository
        self.pricing = pricing
        self.lifecycle = lifecycle
        self.number_generator = number_generator
        self.max_number_attempts = max_number_attempts

    async def prepare(self, order_id: uuid.UUID, price: Decimal) -> PricePlan:
        """
        Check a price request and quote it without writing anything.

        Args:
            order_id: Order to price
            price: New price, non-negative

        Raises:
            NotFoundError: Order does not exist
            PriceFinalError: Order is paid
            ConflictError: Order was replaced
            ValidationError: Price is invalid
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Measurement order not found", order_id=str(order_id))

        self.lifecycle.ensure_price_mutable(order)
        if order.is_replaced:
            raise ConflictError(
                "This measurement order has been replaced; price the latest order instead",
                order_id=str(order_id),
                replaced_by_order_id=str(order.replaced_by_order_id),
            )

        quote = await self.pricing.quote(
            price,
            order.shipping_location,
            fallback_delivery_fee=order.delivery_fee,
        )
        return PricePlan(order=order, quote=quote)

    async def assign(self, plan: PricePlan, set_by: str) -> PriceChangeResult:
        """
        Write a prepared price, in place or through a replacement order.

        Args:
            plan: Result of ``prepare``
            set_by: Staff identity recorded on the priced order

        Returns:
            PriceChangeResult whose ``order`` is the payable order

        Raises:
            PriceFinalError: Order was paid since ``prepare``
            ConflictError: Order changed concurrently
        """
        now = self.lifecycle.now()
        if self.lifecycle.is_unpriced(plan.order):
            return await self._price_in_place(plan.order, plan.quote, set_by, now)
        return await self._replace(plan.order, plan.quote, set_by, now)

    async def _price_in_place(
        self,
        order: MeasurementOrder,
        quote: PriceQuote,
        set_by: str,
        now: datetime,
    ) -> PriceChangeResult:
        updated = await self.repository.apply_initial_price(
            order.id,
            price=quote.price,
            delivery_fee=quote.delivery_fee,
            tax=quote.tax,
            set_by=set_by,
            set_at=now,
        )
        if updated is None:
            await self._raise_for_lost_race(order.id)

        logger.info(
            "Measurement order priced in place",
            order_id=str(updated.id),
            order_number=updated.order_number,
            price=str(quote.price),
            delivery_fee=str(quote.delivery_fee),
            tax=str(quote.tax),
            degraded_pricing=quote.degraded,
        )
        return PriceChangeResult(
            order=updated,
            assignment=PriceAssignment.IN_PLACE,
            quote=quote,
        )

    async def _replace(
        self,
        order: MeasurementOrder,
        quote: PriceQuote,
        set_by: str,
        now: datetime,
    ) -> PriceChangeResult:
        replacement, original = await self.repository.replace_order(
            order.id,
            build_replacement_values(order, quote, set_by, now),
            cancellation_reason=REPLACEMENT_CANCELLATION_REASON,
            replaced_at=now,
            number_factory=self.number_generator.generate,
            max_attempts=self.max_number_attempts,
        )

        logger.info(
            "Measurement order repriced via replacement",
            original_order_id=str(order.id),
            original_order_number=order.order_number,
            replacement_order_id=str(replacement.id),
            replacement_order_number=replacement.order_number,
            previous_price=str(order.price),
            price=str(quote.price),
            degraded_pricing=quote.degraded,
        )
        return PriceChangeResult(
            order=replacement,
            assignment=PriceAssignment.REPLACED,
            quote=quote,
            original_order=original,
        )

    async def _raise_for_lost_race(self, order_id: uuid.UUID) -> None:
        current = await self.repository.get_by_id(order_id, refresh=True)
        if current is None:
            raise NotFoundError("Measurement order not found", order_id=str(order_id))
        self.lifecycle.ensure_price_mutable(current)
        raise ConflictError(
            "The order was priced concurrently; reload it and try again",
            order_id=str(order_id),
        )
