"""Measurement order status enums and transition tables.

This module defines the order-progress status, payment status and gateway
payment results, together with the allowed-transition tables that every
status change is validated against.
"""

from enum import Enum
from typing import Dict, Set, Tuple


class MeasurementOrderStatus(str, Enum):
    """Order-progress status of a measurement order.

    Stages run in declaration order from ORDER_RECEIVED to DELIVERED.
    CANCELLED can be reached from any stage before delivery. DELIVERED and
    CANCELLED are terminal.
    """

    ORDER_RECEIVED = "order_received"
    DESIGN_REVIEW = "design_review"
    FABRIC_SELECTION = "fabric_selection"
    PATTERN_MAKING = "pattern_making"
    CUTTING = "cutting"
    SEWING = "sewing"
    QUALITY_CHECK = "quality_check"
    PACKED = "packed"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "MeasurementOrderStatus":
        """Convert string to MeasurementOrderStatus.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status is a terminal state."""
        return self in {
            MeasurementOrderStatus.DELIVERED,
            MeasurementOrderStatus.CANCELLED,
        }

    @property
    def stage_index(self) -> int:
        """Position of the status in the progress sequence, -1 for cancelled."""
        if self is MeasurementOrderStatus.CANCELLED:
            return -1
        return PROGRESS_STAGES.index(self)

    @property
    def display_name(self) -> str:
        """Human-readable display name for the status."""
        return self.value.replace("_", " ").title()


class PaymentStatus(str, Enum):
    """Payment status of a measurement order.

    Valid transitions:
    - PENDING -> PAID, FAILED, CANCELLED
    - FAILED -> PAID, CANCELLED
    - CANCELLED -> PAID, FAILED
    - PAID -> (terminal state)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "PaymentStatus":
        """Convert string to PaymentStatus.

        Raises:
            ValueError: If value is not a valid payment status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid payment status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self is PaymentStatus.PAID

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class PaymentResult(str, Enum):
    """Outcome reported by the payment gateway for a transaction."""

    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.value)


# Gateway status strings mapped to results; anything else is ignored.
GATEWAY_STATUS_MAP: Dict[str, PaymentResult] = {
    "PAID": PaymentResult.PAID,
    "SUCCESS": PaymentResult.PAID,
    "SUCCESSFUL": PaymentResult.PAID,
    "OVERPAID": PaymentResult.PAID,
    "FAILED": PaymentResult.FAILED,
    "EXPIRED": PaymentResult.FAILED,
    "CANCELLED": PaymentResult.CANCELLED,
    "USER_CANCELLED": PaymentResult.CANCELLED,
}

PROGRESS_STAGES: Tuple[MeasurementOrderStatus, ...] = tuple(
    status
    for status in MeasurementOrderStatus
    if status is not MeasurementOrderStatus.CANCELLED
)

# First stage entered once payment is confirmed.
POST_PAYMENT_STATUS = MeasurementOrderStatus.DESIGN_REVIEW


def _build_status_transitions() -> Dict[MeasurementOrderStatus, Set[MeasurementOrderStatus]]:
    transitions: Dict[MeasurementOrderStatus, Set[MeasurementOrderStatus]] = {}
    for index, stage in enumerate(PROGRESS_STAGES):
        if stage.is_terminal():
            transitions[stage] = set()
            continue
        transitions[stage] = set(PROGRESS_STAGES[index + 1:])
        transitions[stage].add(MeasurementOrderStatus.CANCELLED)
    transitions[MeasurementOrderStatus.CANCELLED] = set()
    return transitions


# Staff may skip stages forward but never move backwards.
ORDER_STATUS_TRANSITIONS: Dict[
    MeasurementOrderStatus, Set[MeasurementOrderStatus]
] = _build_status_transitions()

PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.FAILED: {
        PaymentStatus.PAID,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.CANCELLED: {
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
    },
    PaymentStatus.PAID: set(),
}


def validate_order_status_transition(
    current: MeasurementOrderStatus, target: MeasurementOrderStatus
) -> bool:
    """Check whether staff may move an order from ``current`` to ``target``."""
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_payment_status_transition(
    current: PaymentStatus, target: PaymentStatus
) -> bool:
    """Check whether a gateway event may move payment from ``current`` to ``target``."""
    return target in PAYMENT_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: MeasurementOrderStatus,
) -> Set[MeasurementOrderStatus]:
    """Get the statuses reachable from ``current``."""
    return set(ORDER_STATUS_TRANSITIONS.get(current, set()))
