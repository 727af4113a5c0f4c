"""
Tests for order and payment status rules.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import pytest

from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentResult,
    PaymentStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from atelier.services.measurement_orders.errors import (
    ConflictError,
    InvalidStatusTransitionError,
    OrderReplacedError,
    PriceFinalError,
)
from atelier.services.measurement_orders.lifecycle import (
    PRICE_FINAL_MESSAGE,
    OrderLifecycle,
)

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def lifecycle() -> OrderLifecycle:
    """Lifecycle with a frozen clock."""
    return OrderLifecycle(clock=lambda: NOW)


@pytest.fixture
def order() -> Mock:
    """
    Create a priced, unpaid order stand-in.

    Returns:
        Mock with the attributes the lifecycle reads
    """
    order = Mock()
    order.id = uuid4()
    order.order_number = "MSO-20260314-ABC123"
    order.status = MeasurementOrderStatus.ORDER_RECEIVED
    order.payment_status = PaymentStatus.PENDING
    order.price = Decimal("15000.00")
    order.is_replaced = False
    order.replaced_by_order_id = None
    return order


# ============================================================================
# Transition Table Tests
# ============================================================================


class TestOrderStatusTransitions:
    """Test the forward-only transition table."""

    def test_forward_moves_allowed(self):
        assert validate_order_status_transition(
            MeasurementOrderStatus.ORDER_RECEIVED, MeasurementOrderStatus.DESIGN_REVIEW
        )
        assert validate_order_status_transition(
            MeasurementOrderStatus.CUTTING, MeasurementOrderStatus.SHIPPED
        )

    def test_backward_moves_rejected(self):
        assert not validate_order_status_transition(
            MeasurementOrderStatus.SEWING, MeasurementOrderStatus.CUTTING
        )

    def test_cancel_allowed_before_delivery(self):
        for status in MeasurementOrderStatus:
            if status.is_terminal():
                continue
            assert MeasurementOrderStatus.CANCELLED in get_allowed_order_transitions(status)

    def test_terminal_states_have_no_exits(self):
        assert get_allowed_order_transitions(MeasurementOrderStatus.DELIVERED) == set()
        assert get_allowed_order_transitions(MeasurementOrderStatus.CANCELLED) == set()

    def test_from_string_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid order status"):
            MeasurementOrderStatus.from_string("teleported")


# ============================================================================
# Status Change Tests
# ============================================================================


class TestPlanStatusChange:
    """Test staff status change planning."""

    def test_plain_stage_change(self, lifecycle, order):
        values = lifecycle.plan_status_change(order, MeasurementOrderStatus.DESIGN_REVIEW)

        assert values == {"status": MeasurementOrderStatus.DESIGN_REVIEW}

    @pytest.mark.parametrize(
        "target,stamp",
        [
            (MeasurementOrderStatus.SHIPPED, "shipped_at"),
            (MeasurementOrderStatus.DELIVERED, "delivered_at"),
            (MeasurementOrderStatus.CANCELLED, "cancelled_at"),
        ],
    )
    def test_stamped_targets(self, lifecycle, order, target, stamp):
        order.status = MeasurementOrderStatus.PACKED

        values = lifecycle.plan_status_change(order, target)

        assert values["status"] == target
        assert values[stamp] == NOW

    def test_same_status_is_noop(self, lifecycle, order):
        assert lifecycle.plan_status_change(order, order.status) == {}

    def test_invalid_move_lists_allowed(self, lifecycle, order):
        order.status = MeasurementOrderStatus.DELIVERED

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            lifecycle.plan_status_change(order, MeasurementOrderStatus.SEWING)

        assert exc_info.value.context["allowed_transitions"] == []


# ============================================================================
# Price Guard Tests
# ============================================================================


class TestPriceGuards:
    """Test price mutability checks."""

    def test_paid_order_price_is_final(self, lifecycle, order):
        order.payment_status = PaymentStatus.PAID

        with pytest.raises(PriceFinalError, match=PRICE_FINAL_MESSAGE):
            lifecycle.ensure_price_mutable(order)

    @pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.FAILED])
    def test_unpaid_order_price_mutable(self, lifecycle, order, status):
        order.payment_status = status

        lifecycle.ensure_price_mutable(order)

    @pytest.mark.parametrize(
        "price,expected",
        [(None, True), (Decimal("0"), True), (Decimal("0.01"), False)],
    )
    def test_unpriced_detection(self, lifecycle, order, price, expected):
        order.price = price

        assert lifecycle.is_unpriced(order) is expected


# ============================================================================
# Payment Result Tests
# ============================================================================


class TestPlanPaymentResult:
    """Test gateway result planning."""

    def test_paid_advances_to_design_review(self, lifecycle, order):
        values = lifecycle.plan_payment_result(order, PaymentResult.PAID)

        assert values == {
            "payment_status": PaymentStatus.PAID,
            "paid_at": NOW,
            "status": MeasurementOrderStatus.DESIGN_REVIEW,
        }

    def test_paid_uses_gateway_timestamp(self, lifecycle, order):
        gateway_time = datetime(2026, 3, 13, 18, 0, tzinfo=timezone.utc)

        values = lifecycle.plan_payment_result(order, PaymentResult.PAID, paid_at=gateway_time)

        assert values["paid_at"] == gateway_time

    def test_paid_keeps_advanced_status(self, lifecycle, order):
        order.status = MeasurementOrderStatus.SEWING

        values = lifecycle.plan_payment_result(order, PaymentResult.PAID)

        assert "status" not in values

    def test_failed_cancels_order(self, lifecycle, order):
        values = lifecycle.plan_payment_result(order, PaymentResult.FAILED)

        assert values["payment_status"] == PaymentStatus.FAILED
        assert values["status"] == MeasurementOrderStatus.CANCELLED
        assert values["cancelled_at"] == NOW

    def test_cancelled_only_touches_payment_status(self, lifecycle, order):
        values = lifecycle.plan_payment_result(order, PaymentResult.CANCELLED)

        assert values == {"payment_status": PaymentStatus.CANCELLED}

    def test_duplicate_result_is_noop(self, lifecycle, order):
        order.payment_status = PaymentStatus.PAID

        assert lifecycle.plan_payment_result(order, PaymentResult.PAID) == {}

    def test_paid_on_replaced_order_rejected(self, lifecycle, order):
        order.is_replaced = True
        order.replaced_by_order_id = uuid4()

        with pytest.raises(OrderReplacedError):
            lifecycle.plan_payment_result(order, PaymentResult.PAID)

    def test_failure_after_payment_rejected(self, lifecycle, order):
        order.payment_status = PaymentStatus.PAID

        with pytest.raises(ConflictError):
            lifecycle.plan_payment_result(order, PaymentResult.FAILED)

    def test_retry_after_failure_can_pay(self, lifecycle, order):
        order.payment_status = PaymentStatus.FAILED
        order.status = MeasurementOrderStatus.CANCELLED

        values = lifecycle.plan_payment_result(order, PaymentResult.PAID)

        assert values["payment_status"] == PaymentStatus.PAID
        assert values["status"] == MeasurementOrderStatus.DESIGN_REVIEW
