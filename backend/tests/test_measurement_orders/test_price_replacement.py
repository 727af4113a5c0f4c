"""
End-to-end tests for pricing, replacement and payment against SQLite.

These run the service wired to its SQL collaborators so the conditional
updates, savepoints and check constraints are exercised for real.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import update

from atelier.database.models import MeasurementOrder
from atelier.schemas.measurement_orders import MeasurementOrderCreate
from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentResult,
    PaymentStatus,
)
from atelier.services.measurement_orders.errors import (
    ConflictError,
    OrderReplacedError,
    PriceFinalError,
    ValidationError,
)
from atelier.services.measurement_orders.lifecycle import PRICE_FINAL_MESSAGE
from atelier.services.measurement_orders.replacement import (
    REPLACEMENT_CANCELLATION_REASON,
    PriceAssignment,
)
from atelier.services.measurement_orders.repository import (
    TRANSACTION_REFERENCE_IN_USE_MESSAGE,
)
from atelier.services.measurement_orders.service import (
    REPLACED_CHECKOUT_MESSAGE,
    UNPRICED_CHECKOUT_MESSAGE,
    build_measurement_order_service,
)
from atelier.services.notifications.notifier import NotificationServiceError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def notifier() -> AsyncMock:
    """
    Create mock customer notifier.

    Returns:
        AsyncMock: Notifier recording quote and confirmation sends
    """
    mock = AsyncMock()
    mock.send_price_quote = AsyncMock()
    mock.send_payment_confirmation = AsyncMock()
    return mock


@pytest.fixture
def service(db_session, notifier):
    return build_measurement_order_service(db_session, notifier=notifier)


def guest_intake(template_id, measurements=None, **overrides) -> MeasurementOrderCreate:
    """Guest submission for one template line shipping to Lagos."""
    values = {
        "templates": [
            {
                "template_id": str(template_id),
                "quantity": 1,
                "measurements": measurements
                or [
                    {"field_name": "chest", "value": 40},
                    {"field_name": "waist", "value": 34},
                ],
            }
        ],
        "shipping_location": "Lagos",
        "first_name": "Chidi",
        "last_name": "Eze",
        "email": "chidi@example.com",
        "phone": "+2348098765432",
        "address": "4 Allen Avenue",
        "city": "Ikeja",
        "state": "Lagos",
        "zip_code": "100271",
        "country": "Nigeria",
    }
    values.update(overrides)
    return MeasurementOrderCreate(**values)


@pytest.fixture
async def guest_order(service, make_template, make_shipping_settings):
    """
    Create an unpriced guest order shipping to Lagos.

    Returns:
        MeasurementOrder: Persisted order with the Lagos fee recorded
    """
    await make_shipping_settings()
    template = await make_template()
    return await service.create_order(guest_intake(template.id))


# ============================================================================
# Intake Tests
# ============================================================================


class TestIntake:
    """Test order creation against the database."""

    @pytest.mark.asyncio
    async def test_guest_order_created_unpriced(self, guest_order):
        assert guest_order.is_guest
        assert guest_order.guest_email == "chidi@example.com"
        assert guest_order.user_id is None
        assert guest_order.price is None
        assert guest_order.tax is None
        assert guest_order.delivery_fee == Decimal("1000")
        assert guest_order.status == MeasurementOrderStatus.ORDER_RECEIVED
        assert guest_order.payment_status == PaymentStatus.PENDING
        assert guest_order.templates[0]["template_title"] == "Senator Top"

    @pytest.mark.asyncio
    async def test_account_order_uses_profile(self, service, make_account, make_template):
        account = await make_account(email="ada@example.com")
        template = await make_template(fields=("inseam",))
        intake = MeasurementOrderCreate(
            templates=[
                {
                    "template_id": str(template.id),
                    "measurements": [{"field_name": "inseam", "value": 31}],
                }
            ],
            shipping_location="Kano",
        )

        order = await service.create_order(intake, actor_user_id=account.id)

        assert order.user_id == account.id
        assert not order.is_guest
        assert order.guest_email is None
        assert order.name == "Ada Okafor"
        assert order.delivery_fee == Decimal("0")

    @pytest.mark.asyncio
    async def test_guest_account_provisioned_with_order(
        self, service, make_template, db_session
    ):
        template = await make_template(fields=("inseam",))
        intake = MeasurementOrderCreate(
            templates=[
                {
                    "template_id": str(template.id),
                    "measurements": [{"field_name": "inseam", "value": 31}],
                }
            ],
            shipping_location="Lagos",
            name="Ngozi Obi",
            email="ngozi@example.com",
            phone="+2348011112222",
            address="9 Awolowo Road",
            city="Ikoyi",
            state="Lagos",
            zip_code="101233",
            country="Nigeria",
            create_account=True,
            password="tailored-pass",
        )

        order = await service.create_order(intake)

        assert order.user_id is not None
        assert not order.is_guest
        directory_identity = await service.personal_info.accounts.find_by_email(
            "ngozi@example.com"
        )
        assert directory_identity.id == order.user_id
        assert directory_identity.city == "Ikoyi"

    @pytest.mark.asyncio
    async def test_missing_measurement_creates_nothing(self, service, make_template):
        template = await make_template()
        intake = MeasurementOrderCreate(
            templates=[
                {
                    "template_id": str(template.id),
                    "measurements": [{"field_name": "chest", "value": 40}],
                }
            ],
            shipping_location="Lagos",
            first_name="Chidi",
            last_name="Eze",
            email="chidi@example.com",
            phone="+2348098765432",
            address="4 Allen Avenue",
            city="Ikeja",
            state="Lagos",
            zip_code="100271",
            country="Nigeria",
        )

        with pytest.raises(ValidationError):
            await service.create_order(intake)

        listing = await service.list_orders()
        assert listing["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_personal_and_measurement_problems_reported_together(
        self, service, make_template
    ):
        template = await make_template()
        intake = guest_intake(
            template.id,
            measurements=[{"field_name": "chest", "value": 40}],
            phone=None,
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(intake)

        assert exc_info.value.violations == [
            "Phone number is required",
            'Measurement for "waist" is required for template "Senator Top"',
        ]


# ============================================================================
# Pricing and Replacement Tests
# ============================================================================


class TestSetPrice:
    """Test in-place pricing and replacement."""

    @pytest.mark.asyncio
    async def test_first_price_in_place(self, service, guest_order, notifier):
        result = await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")

        assert result.assignment is PriceAssignment.IN_PLACE
        order = result.order
        assert order.id == guest_order.id
        assert order.order_number == guest_order.order_number
        assert order.price == Decimal("15000")
        assert order.delivery_fee == Decimal("1000")
        assert order.tax == Decimal("1200")
        assert order.price_set_by == "staff@atelier.test"
        assert not order.is_replaced
        notifier.send_price_quote.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reprice_creates_replacement(self, service, guest_order, notifier):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")

        result = await service.set_price(guest_order.id, Decimal("18000"), "lead@atelier.test")

        assert result.replaced
        replacement = result.order
        original = result.original_order
        assert replacement.id != guest_order.id
        assert replacement.order_number != guest_order.order_number
        assert replacement.price == Decimal("18000")
        assert replacement.tax == Decimal("1425")
        assert replacement.original_order_id == guest_order.id
        assert replacement.status == MeasurementOrderStatus.ORDER_RECEIVED
        assert replacement.payment_status == PaymentStatus.PENDING
        assert replacement.email == "chidi@example.com"
        assert replacement.templates == guest_order.templates

        assert original.is_replaced
        assert original.replaced_by_order_id == replacement.id
        assert original.status == MeasurementOrderStatus.CANCELLED
        assert original.cancellation_reason == REPLACEMENT_CANCELLATION_REASON
        assert original.price == Decimal("15000")

        quoted = notifier.send_price_quote.await_args_list[-1].args[0]
        assert quoted.id == replacement.id

    @pytest.mark.asyncio
    async def test_replaced_order_cannot_be_repriced(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.set_price(guest_order.id, Decimal("18000"), "staff@atelier.test")

        with pytest.raises(ConflictError):
            await service.set_price(guest_order.id, Decimal("19000"), "staff@atelier.test")

    @pytest.mark.asyncio
    async def test_free_shipping_threshold(
        self, service, guest_order, make_shipping_settings
    ):
        await make_shipping_settings(free_shipping_threshold=Decimal("15000"))

        result = await service.set_price(guest_order.id, Decimal("20000"), "staff@atelier.test")

        assert result.quote.free_shipping_applied
        assert result.order.delivery_fee == Decimal("0")
        assert result.order.tax == Decimal("1500")

    @pytest.mark.asyncio
    async def test_zero_price_counts_as_unpriced(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("0"), "staff@atelier.test")

        result = await service.set_price(guest_order.id, Decimal("5000"), "staff@atelier.test")

        assert result.assignment is PriceAssignment.IN_PLACE
        assert result.order.id == guest_order.id

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_price(self, service, guest_order, notifier):
        notifier.send_price_quote.side_effect = NotificationServiceError("SES down")

        result = await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")

        stored = await service.get_order(guest_order.id)
        assert stored.price == Decimal("15000")
        assert result.order.id == guest_order.id


# ============================================================================
# Checkout and Payment Tests
# ============================================================================


class TestCheckoutAndPayment:
    """Test checkout guards and gateway results."""

    @pytest.mark.asyncio
    async def test_unpriced_order_not_payable(self, service, guest_order):
        with pytest.raises(ConflictError, match=UNPRICED_CHECKOUT_MESSAGE):
            await service.initialize_checkout(guest_order.order_number, "TXN-1")

    @pytest.mark.asyncio
    async def test_replaced_order_not_payable(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.set_price(guest_order.id, Decimal("18000"), "staff@atelier.test")

        with pytest.raises(ConflictError) as exc_info:
            await service.initialize_checkout(guest_order.order_number, "TXN-1")

        assert exc_info.value.message == REPLACED_CHECKOUT_MESSAGE

    @pytest.mark.asyncio
    async def test_checkout_attaches_references(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")

        order = await service.initialize_checkout(
            guest_order.order_number, "TXN-1", payment_url="https://pay.test/TXN-1"
        )

        assert order.transaction_reference == "TXN-1"
        assert order.payment_reference == guest_order.order_number
        assert order.payment_url == "https://pay.test/TXN-1"
        summary = service.payment_summary(order)
        assert summary["total"] == Decimal("17200.00")
        assert summary["is_payable"]

    @pytest.mark.asyncio
    async def test_full_replacement_scenario(self, service, guest_order, notifier):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-OLD")

        result = await service.set_price(guest_order.id, Decimal("18000"), "staff@atelier.test")
        replacement = result.order
        await service.initialize_checkout(replacement.order_number, "TXN-NEW")

        with pytest.raises(OrderReplacedError):
            await service.apply_payment_result("TXN-OLD", PaymentResult.PAID)

        paid = await service.apply_payment_result("TXN-NEW", PaymentResult.PAID)

        assert paid.id == replacement.id
        assert paid.payment_status == PaymentStatus.PAID
        assert paid.status == MeasurementOrderStatus.DESIGN_REVIEW
        assert paid.paid_at is not None
        notifier.send_payment_confirmation.assert_awaited_once()

        with pytest.raises(PriceFinalError, match=PRICE_FINAL_MESSAGE):
            await service.set_price(replacement.id, Decimal("20000"), "staff@atelier.test")

        original = await service.get_order(guest_order.id)
        assert original.payment_status != PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_rejected_reprice_keeps_loaded_orders_usable(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")
        await service.apply_payment_result("TXN-1", PaymentResult.PAID)

        with pytest.raises(PriceFinalError):
            await service.set_price(guest_order.id, Decimal("16000"), "staff@atelier.test")

        assert guest_order.price == Decimal("15000")
        assert guest_order.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_paid_returns_current_order(
        self, service, guest_order, notifier, session_factory
    ):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")

        # Another worker marks the order paid while this session still sees it pending
        async with session_factory() as other:
            await other.execute(
                update(MeasurementOrder)
                .where(MeasurementOrder.id == guest_order.id)
                .values(
                    payment_status=PaymentStatus.PAID,
                    status=MeasurementOrderStatus.DESIGN_REVIEW,
                )
            )
            await other.commit()
        assert guest_order.payment_status == PaymentStatus.PENDING

        order = await service.apply_payment_result("TXN-1", PaymentResult.PAID)

        assert order.id == guest_order.id
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == MeasurementOrderStatus.DESIGN_REVIEW
        notifier.send_payment_confirmation.assert_not_called()

    @pytest.mark.asyncio
    async def test_reference_of_another_order_rejected(self, service, guest_order):
        template_id = guest_order.templates[0]["template_id"]
        second = await service.create_order(
            guest_intake(template_id, email="ngozi@example.com")
        )
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.set_price(second.id, Decimal("20000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")

        with pytest.raises(ConflictError, match=TRANSACTION_REFERENCE_IN_USE_MESSAGE):
            await service.initialize_checkout(second.order_number, "TXN-1")

        paid = await service.apply_payment_result("TXN-1", PaymentResult.PAID)
        assert paid.id == guest_order.id
        untouched = await service.get_order(second.id)
        assert untouched.payment_status == PaymentStatus.PENDING
        assert untouched.transaction_reference is None

    @pytest.mark.asyncio
    async def test_checkout_repeated_with_same_reference(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")

        order = await service.initialize_checkout(
            guest_order.order_number, "TXN-1", payment_url="https://pay.test/TXN-1"
        )

        assert order.transaction_reference == "TXN-1"
        assert order.payment_url == "https://pay.test/TXN-1"

    @pytest.mark.asyncio
    async def test_duplicate_paid_result_is_noop(self, service, guest_order, notifier):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")

        first = await service.apply_payment_result("TXN-1", PaymentResult.PAID)
        second = await service.apply_payment_result("TXN-1", PaymentResult.PAID)

        assert second.id == first.id
        assert second.payment_status == PaymentStatus.PAID
        notifier.send_payment_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_payment_cancels(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")

        order = await service.apply_payment_result("TXN-1", PaymentResult.FAILED)

        assert order.payment_status == PaymentStatus.FAILED
        assert order.status == MeasurementOrderStatus.CANCELLED
        assert order.cancelled_at is not None

    @pytest.mark.asyncio
    async def test_paid_order_checkout_rejected(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        await service.initialize_checkout(guest_order.order_number, "TXN-1")
        await service.apply_payment_result("TXN-1", PaymentResult.PAID)

        with pytest.raises(ConflictError, match="already been paid"):
            await service.initialize_checkout(guest_order.order_number, "TXN-2")


# ============================================================================
# Status and Listing Tests
# ============================================================================


class TestStatusAndListing:
    """Test staff status updates and listings."""

    @pytest.mark.asyncio
    async def test_status_update_stamps_shipped(self, service, guest_order):
        order = await service.update_status(guest_order.id, MeasurementOrderStatus.SHIPPED)

        assert order.status == MeasurementOrderStatus.SHIPPED
        assert order.shipped_at is not None

    @pytest.mark.asyncio
    async def test_list_search_and_filters(self, service, guest_order):
        by_number = await service.list_orders(search_term=guest_order.order_number[-6:])
        by_email = await service.list_orders(search_term="CHIDI@")
        accounts_only = await service.list_orders(is_guest=False)
        shipped = await service.list_orders(status=MeasurementOrderStatus.SHIPPED)

        assert [o.id for o in by_number["orders"]] == [guest_order.id]
        assert by_email["pagination"]["total"] == 1
        assert accounts_only["orders"] == []
        assert shipped["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_replacement_listed_first(self, service, guest_order):
        await service.set_price(guest_order.id, Decimal("15000"), "staff@atelier.test")
        result = await service.set_price(guest_order.id, Decimal("18000"), "staff@atelier.test")

        listing = await service.list_orders(page=1, limit=1)

        assert listing["orders"][0].id == result.order.id
        assert listing["pagination"] == {
            "page": 1,
            "limit": 1,
            "total": 2,
            "totalPages": 2,
            "hasNextPage": True,
            "hasPrevPage": False,
        }
