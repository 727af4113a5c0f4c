"""
Measurement order service.

Coordinates intake, pricing, status progression, checkout and payment
results. Every command ends in exactly one commit; notifications are sent
after the commit and their failures never undo it.
"""

import math
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.config import Settings, get_settings
from atelier.core.logging import get_logger, log_performance
from atelier.database.models.measurement_order import MeasurementOrder
from atelier.services.accounts.directory import SQLAccountDirectory
from atelier.services.catalog.templates import SQLTemplateCatalog
from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentResult,
    PaymentStatus,
)
from atelier.services.measurement_orders.errors import (
    ConflictError,
    MeasurementOrderError,
    NotFoundError,
    ValidationError,
    merge_validation_errors,
)
from atelier.services.measurement_orders.lifecycle import OrderLifecycle
from atelier.services.measurement_orders.order_number import OrderNumberGenerator
from atelier.services.measurement_orders.personal_info import PersonalInfoResolver
from atelier.services.measurement_orders.ports import Notifier
from atelier.services.measurement_orders.pricing import PricingEngine, to_money
from atelier.services.measurement_orders.replacement import (
    PriceChangeResult,
    ReplacementOrchestrator,
)
from atelier.services.measurement_orders.repository import (
    TRANSACTION_REFERENCE_IN_USE_MESSAGE,
    MeasurementOrderRepository,
)
from atelier.services.measurement_orders.templates import TemplateResolver
from atelier.services.notifications.notifier import NotificationServiceError
from atelier.services.shipping.settings import SQLShippingSettingsProvider

logger = get_logger(__name__)

REPLACED_CHECKOUT_MESSAGE = (
    "This measurement order is no longer valid because the price was updated. "
    "Please use the latest order/receipt sent to your email."
)
PAID_CHECKOUT_MESSAGE = "This measurement order has already been paid."
UNPRICED_CHECKOUT_MESSAGE = "Price not set for this measurement order"
SHIPPING_LOCATION_REQUIRED_MESSAGE = "Shipping location is required"

MAX_PAGE_SIZE = 100


def build_pagination(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


class MeasurementOrderService:
    """
    Measurement order service orchestrating intake, pricing and payment.

    Attributes:
        repository: Order persistence gateway
        personal_info: Identity resolution for intake
        templates: Template line resolution for intake
        pricing: Delivery fee and tax computation
        lifecycle: Status and payment transition rules
        orchestrator: Price assignment and replacement
        notifier: Optional customer notifier
    """

    def __init__(
        self,
        repository: MeasurementOrderRepository,
        personal_info: PersonalInfoResolver,
        templates: TemplateResolver,
        pricing: PricingEngine,
        lifecycle: Optional[OrderLifecycle] = None,
        number_generator: Optional[OrderNumberGenerator] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = repository
        self.personal_info = personal_info
        self.templates = templates
        self.pricing = pricing
        self.lifecycle = lifecycle or OrderLifecycle()
        self.number_generator = number_generator or OrderNumberGenerator(
            prefix=self.settings.order_number_prefix
        )
        self.notifier = notifier
        self.orchestrator = ReplacementOrchestrator(
            repository=repository,
            pricing=pricing,
            lifecycle=self.lifecycle,
            number_generator=self.number_generator,
            max_number_attempts=self.settings.order_number_max_attempts,
        )

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def create_order(
        self,
        intake: Any,
        actor_user_id: Optional[uuid.UUID] = None,
    ) -> MeasurementOrder:
        """
        Create a measurement order from a customer submission.

        Args:
            intake: Submission carrying templates, notes, shipping location
                and, for guests, personal details
            actor_user_id: Authenticated account, or None for guests

        Returns:
            The created order, unpriced

        Raises:
            ValidationError: Personal info, templates or measurements invalid
            NotFoundError: Account or template missing
            AccountExistsError: Guest asked for an account with a taken email
            OrderPersistenceError: Order could not be stored
        """
        with log_performance(logger, "measurement_order.create"):
            shipping_location = (getattr(intake, "shipping_location", None) or "").strip()
            errors: list[ValidationError] = []
            if not shipping_location:
                errors.append(ValidationError(SHIPPING_LOCATION_REQUIRED_MESSAGE))

            resolution = None
            try:
                resolution = await self.personal_info.resolve(actor_user_id, intake)
            except ValidationError as e:
                errors.append(e)

            items = []
            try:
                items = await self.templates.resolve(getattr(intake, "templates", None))
            except ValidationError as e:
                errors.append(e)

            if errors:
                raise merge_validation_errors(errors)

            try:
                identity = await self.personal_info.provision(resolution)
                delivery_fee = await self.pricing.delivery_fee_for_location(shipping_location)

                values = {
                    **identity.origin_columns(),
                    **identity.personal_info.to_columns(),
                    "templates": [item.to_dict() for item in items],
                    "notes": getattr(intake, "notes", None),
                    "preferred_style": getattr(intake, "preferred_style", None),
                    "shipping_location": shipping_location,
                    "delivery_fee": delivery_fee,
                    "payment_method": (
                        getattr(intake, "payment_method", None)
                        or self.settings.default_payment_method
                    ),
                    "status": MeasurementOrderStatus.ORDER_RECEIVED,
                    "payment_status": PaymentStatus.PENDING,
                    "is_replaced": False,
                }

                order = await self.repository.create(
                    values,
                    self.number_generator.generate,
                    self.settings.order_number_max_attempts,
                )
                await self.repository.commit()
            except MeasurementOrderError:
                await self.repository.rollback()
                raise

        logger.info(
            "Measurement order created",
            order_id=str(order.id),
            order_number=order.order_number,
            is_guest=order.is_guest,
            account_created=identity.account_created,
            template_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Staff commands
    # ------------------------------------------------------------------

    async def set_price(
        self,
        order_id: uuid.UUID,
        price: Decimal,
        set_by: str,
    ) -> PriceChangeResult:
        """
        Assign a price, replacing the order if it was already priced.

        The customer is sent a quote for the payable order once the change
        is committed.

        Raises:
            NotFoundError: Order does not exist
            PriceFinalError: Order is paid
            ConflictError: Order was replaced or changed concurrently
            ValidationError: Price is invalid
        """
        plan = await self.orchestrator.prepare(order_id, price)

        try:
            result = await self.orchestrator.assign(plan, set_by)
            await self.repository.commit()
        except MeasurementOrderError:
            await self.repository.rollback()
            raise

        await self._notify("send_price_quote", result.order)
        return result

    async def update_status(
        self,
        order_id: uuid.UUID,
        status: MeasurementOrderStatus,
    ) -> MeasurementOrder:
        """
        Move an order to a new progress stage.

        Raises:
            NotFoundError: Order does not exist
            InvalidStatusTransitionError: Move not allowed
            ConflictError: Status changed concurrently
        """
        order = await self._require(order_id)
        values = self.lifecycle.plan_status_change(order, status)
        if not values:
            return order

        try:
            updated = await self.repository.update_status(order.id, order.status, values)
            if updated is None:
                raise ConflictError(
                    "The order status changed concurrently; reload it and try again",
                    order_id=str(order_id),
                )
            await self.repository.commit()
        except MeasurementOrderError:
            await self.repository.rollback()
            raise

        logger.info(
            "Measurement order status updated",
            order_id=str(order_id),
            order_number=updated.order_number,
            status=updated.status.value,
        )
        return updated

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def initialize_checkout(
        self,
        order_number: str,
        transaction_reference: str,
        payment_url: Optional[str] = None,
        payment_reference: Optional[str] = None,
        gateway_payment_reference: Optional[str] = None,
    ) -> MeasurementOrder:
        """
        Attach gateway references to a payable order.

        Raises:
            NotFoundError: Order does not exist
            ConflictError: Order is replaced, paid or unpriced, or the
                reference belongs to another order
        """
        order = await self.repository.get_by_order_number(order_number)
        if order is None:
            raise NotFoundError("Measurement order not found", order_number=order_number)
        self._ensure_payable(order)

        holder = await self.repository.get_by_transaction_reference(transaction_reference)
        if holder is not None and holder.id != order.id:
            logger.warning(
                "Checkout reference already attached to another order",
                order_number=order_number,
                holder_order_number=holder.order_number,
                transaction_reference=transaction_reference,
            )
            raise ConflictError(
                TRANSACTION_REFERENCE_IN_USE_MESSAGE,
                order_number=order_number,
                transaction_reference=transaction_reference,
            )

        try:
            updated = await self.repository.attach_payment_info(
                order.id,
                payment_reference=payment_reference or order.order_number,
                transaction_reference=transaction_reference,
                payment_url=payment_url,
                gateway_payment_reference=gateway_payment_reference,
            )
            if updated is None:
                current = await self.repository.get_by_id(order.id, refresh=True)
                self._ensure_payable(current)
                raise ConflictError(
                    "The order changed during checkout; reload it and try again",
                    order_number=order_number,
                )
            await self.repository.commit()
        except MeasurementOrderError:
            await self.repository.rollback()
            raise

        logger.info(
            "Checkout initialized",
            order_number=order_number,
            transaction_reference=transaction_reference,
        )
        return updated

    async def apply_payment_result(
        self,
        transaction_reference: str,
        result: PaymentResult,
        paid_at: Optional[datetime] = None,
        amount_paid: Optional[Decimal] = None,
    ) -> MeasurementOrder:
        """
        Apply a gateway result to the order carrying the reference.

        Repeated results are no-ops. The first transition to paid sends a
        payment confirmation. A paid amount that differs from the order
        total is logged but still applied.

        Raises:
            NotFoundError: No order carries the reference
            OrderReplacedError: Paid result for a replaced order
            ConflictError: Result cannot follow the current payment status
        """
        order = await self.repository.get_by_transaction_reference(transaction_reference)
        if order is None:
            raise NotFoundError(
                "No measurement order for transaction reference",
                transaction_reference=transaction_reference,
            )

        if result is PaymentResult.PAID and amount_paid is not None:
            self._check_amount_paid(order, amount_paid)

        values = self.lifecycle.plan_payment_result(order, result, paid_at=paid_at)
        if not values:
            logger.info(
                "Duplicate payment result ignored",
                order_number=order.order_number,
                result=result.value,
            )
            return order

        try:
            updated = await self.repository.apply_payment_values(
                order.id, order.payment_status, values
            )
            if updated is None:
                current = await self.repository.get_by_id(order.id, refresh=True)
                if current is not None and not self.lifecycle.plan_payment_result(
                    current, result, paid_at=paid_at
                ):
                    await self.repository.commit()
                    logger.info(
                        "Concurrent duplicate payment result ignored",
                        order_number=current.order_number,
                        result=result.value,
                    )
                    return current
                raise ConflictError(
                    "Payment status changed concurrently",
                    order_id=str(order.id),
                )
            await self.repository.commit()
        except MeasurementOrderError:
            await self.repository.rollback()
            raise

        logger.info(
            "Payment result applied",
            order_id=str(updated.id),
            order_number=updated.order_number,
            payment_status=updated.payment_status.value,
            status=updated.status.value,
        )

        if updated.payment_status == PaymentStatus.PAID:
            await self._notify("send_payment_confirmation", updated)
        return updated

    def payment_summary(self, order: MeasurementOrder) -> dict[str, Any]:
        """Subtotal, fee, tax and total for display and checkout."""
        subtotal = to_money(order.price or 0)
        delivery_fee = to_money(order.delivery_fee or 0)
        tax = to_money(order.tax or 0)
        return {
            "order_number": order.order_number,
            "subtotal": subtotal,
            "delivery_fee": delivery_fee,
            "tax": tax,
            "total": subtotal + delivery_fee + tax,
            "payment_status": order.payment_status.value,
            "is_payable": self._is_payable(order),
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: uuid.UUID) -> MeasurementOrder:
        return await self._require(order_id)

    async def get_order_by_number(self, order_number: str) -> MeasurementOrder:
        order = await self.repository.get_by_order_number(order_number)
        if order is None:
            raise NotFoundError("Measurement order not found", order_number=order_number)
        return order

    async def find_by_transaction_reference(
        self, transaction_reference: str
    ) -> Optional[MeasurementOrder]:
        return await self.repository.get_by_transaction_reference(transaction_reference)

    async def list_orders(
        self,
        page: int = 1,
        limit: int = 10,
        search_term: Optional[str] = None,
        status: Optional[MeasurementOrderStatus] = None,
        is_guest: Optional[bool] = None,
    ) -> dict[str, Any]:
        """
        Paginated staff listing, newest first.

        Returns:
            Dictionary with ``orders`` and ``pagination``
        """
        page, limit = self._normalize_page(page, limit)
        orders, total = await self.repository.list_orders(
            page=page,
            limit=limit,
            search_term=search_term,
            status=status,
            is_guest=is_guest,
        )
        return {"orders": list(orders), "pagination": build_pagination(page, limit, total)}

    async def list_user_orders(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        page, limit = self._normalize_page(page, limit)
        orders, total = await self.repository.list_orders(
            page=page, limit=limit, user_id=user_id
        )
        return {"orders": list(orders), "pagination": build_pagination(page, limit, total)}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, order_id: uuid.UUID) -> MeasurementOrder:
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Measurement order not found", order_id=str(order_id))
        return order

    def _is_payable(self, order: MeasurementOrder) -> bool:
        return (
            not order.is_replaced
            and order.payment_status != PaymentStatus.PAID
            and not self.lifecycle.is_unpriced(order)
        )

    def _ensure_payable(self, order: MeasurementOrder) -> None:
        if order.is_replaced:
            raise ConflictError(
                REPLACED_CHECKOUT_MESSAGE,
                order_number=order.order_number,
                replaced_by_order_id=str(order.replaced_by_order_id),
            )
        if order.payment_status == PaymentStatus.PAID:
            raise ConflictError(PAID_CHECKOUT_MESSAGE, order_number=order.order_number)
        if self.lifecycle.is_unpriced(order):
            raise ConflictError(UNPRICED_CHECKOUT_MESSAGE, order_number=order.order_number)

    def _check_amount_paid(self, order: MeasurementOrder, amount_paid: Decimal) -> None:
        expected = self.payment_summary(order)["total"]
        if to_money(amount_paid) != expected:
            logger.warning(
                "Paid amount differs from order total",
                order_number=order.order_number,
                amount_paid=str(to_money(amount_paid)),
                order_total=str(expected),
            )

    @staticmethod
    def _normalize_page(page: int, limit: int) -> tuple[int, int]:
        return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)

    async def _notify(self, method: str, order: MeasurementOrder) -> None:
        if self.notifier is None:
            return
        try:
            await getattr(self.notifier, method)(order)
            logger.info(
                "Measurement order notification sent",
                order_number=order.order_number,
                notification=method,
            )
        except NotificationServiceError as e:
            logger.error(
                "Failed to send measurement order notification",
                order_number=order.order_number,
                notification=method,
                error=str(e),
            )


def build_measurement_order_service(
    session: AsyncSession,
    notifier: Optional[Notifier] = None,
    settings: Optional[Settings] = None,
) -> MeasurementOrderService:
    """Wire the service against SQL-backed collaborators on ``session``."""
    settings = settings or get_settings()
    return MeasurementOrderService(
        repository=MeasurementOrderRepository(session),
        personal_info=PersonalInfoResolver(
            SQLAccountDirectory(session),
            default_country=settings.default_country,
        ),
        templates=TemplateResolver(SQLTemplateCatalog(session)),
        pricing=PricingEngine(
            SQLShippingSettingsProvider(session),
            vat_rate=settings.vat_rate,
        ),
        number_generator=OrderNumberGenerator(prefix=settings.order_number_prefix),
        notifier=notifier,
        settings=settings,
    )
