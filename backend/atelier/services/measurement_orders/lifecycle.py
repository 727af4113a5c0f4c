"""Order and payment status rules for measurement orders.

The lifecycle never writes anything itself. It validates a requested change
against the transition tables and returns the column values the repository
should apply, so the same rules back the in-memory checks and the
conditional updates issued against the store.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from atelier.core.logging import get_logger
from atelier.services.measurement_orders.enums import (
    POST_PAYMENT_STATUS,
    MeasurementOrderStatus,
    PaymentResult,
    PaymentStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
    validate_payment_status_transition,
)
from atelier.services.measurement_orders.errors import (
    ConflictError,
    InvalidStatusTransitionError,
    OrderReplacedError,
    PriceFinalError,
)

logger = get_logger(__name__)

PRICE_FINAL_MESSAGE = (
    "Cannot change the price of a measurement order that has already been paid."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderLifecycle:
    """Transition rules for order progress and payment status.

    Stamps are applied per target status: entering SHIPPED sets shipped_at,
    DELIVERED sets delivered_at and CANCELLED sets cancelled_at.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow
        self._status_stamps: Dict[MeasurementOrderStatus, str] = {
            MeasurementOrderStatus.SHIPPED: "shipped_at",
            MeasurementOrderStatus.DELIVERED: "delivered_at",
            MeasurementOrderStatus.CANCELLED: "cancelled_at",
        }

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Price guards
    # ------------------------------------------------------------------

    def ensure_price_mutable(self, order: Any) -> None:
        """
        Reject price changes on paid orders.

        Raises:
            PriceFinalError: If the order is paid
        """
        if order.payment_status == PaymentStatus.PAID:
            logger.warning(
                "Price change rejected for paid order",
                order_id=str(order.id),
                order_number=order.order_number,
            )
            raise PriceFinalError(
                PRICE_FINAL_MESSAGE,
                order_id=str(order.id),
            )

    def is_unpriced(self, order: Any) -> bool:
        """An order counts as unpriced while its price is null or zero."""
        return order.price is None or order.price == 0

    # ------------------------------------------------------------------
    # Order status
    # ------------------------------------------------------------------

    def plan_status_change(
        self, order: Any, target: MeasurementOrderStatus
    ) -> Dict[str, Any]:
        """
        Validate a staff status change and return the values to write.

        Writing the current status again yields an empty plan.

        Raises:
            InvalidStatusTransitionError: If the move is not allowed
        """
        current = order.status
        if current == target:
            return {}

        if not validate_order_status_transition(current, target):
            allowed = sorted(s.value for s in get_allowed_order_transitions(current))
            raise InvalidStatusTransitionError(
                f"Invalid transition from {current.value} to {target.value}",
                current_status=current,
                target_status=target,
                order_id=str(order.id),
                allowed_transitions=allowed,
            )

        values: Dict[str, Any] = {"status": target}
        stamp = self._status_stamps.get(target)
        if stamp is not None:
            values[stamp] = self.now()

        logger.info(
            "Status transition validated",
            order_id=str(order.id),
            transition=f"{current.value}->{target.value}",
        )
        return values

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    def plan_payment_result(
        self,
        order: Any,
        result: PaymentResult,
        paid_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Return the values a gateway result should write.

        A repeated result for the status the order already has is a no-op
        and yields an empty plan.

        Raises:
            OrderReplacedError: Paid result for a replaced order
            ConflictError: Result cannot follow the current payment status
        """
        current = order.payment_status
        target = result.payment_status

        if current == target:
            return {}

        if target == PaymentStatus.PAID and order.is_replaced:
            logger.error(
                "Payment reported for replaced order",
                order_id=str(order.id),
                order_number=order.order_number,
                replaced_by_order_id=str(order.replaced_by_order_id),
            )
            raise OrderReplacedError(
                "This measurement order was replaced and cannot be paid",
                order_id=str(order.id),
                replaced_by_order_id=str(order.replaced_by_order_id),
            )

        if not validate_payment_status_transition(current, target):
            raise ConflictError(
                f"Payment status cannot move from {current.value} to {target.value}",
                order_id=str(order.id),
            )

        values: Dict[str, Any] = {"payment_status": target}
        if target == PaymentStatus.PAID:
            values["paid_at"] = paid_at or self.now()
            # Never moves an order that staff already advanced
            if order.status.stage_index < POST_PAYMENT_STATUS.stage_index:
                values["status"] = POST_PAYMENT_STATUS
        elif target == PaymentStatus.FAILED:
            values["status"] = MeasurementOrderStatus.CANCELLED
            values["cancelled_at"] = self.now()

        return values


def get_order_lifecycle() -> OrderLifecycle:
    """Factory used by the service wiring."""
    return OrderLifecycle()
