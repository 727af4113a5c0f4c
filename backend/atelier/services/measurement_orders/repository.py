"""
Measurement order persistence gateway.

All guard-then-act writes are single conditional UPDATE statements whose
affected-row count decides the outcome, so concurrent price assignments and
payment webhooks can never both win against the same order. The replacement
pair (insert new order, mark original replaced) runs inside one SAVEPOINT.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger
from atelier.database.models.measurement_order import MeasurementOrder
from atelier.services.measurement_orders.enums import (
    MeasurementOrderStatus,
    PaymentStatus,
)
from atelier.services.measurement_orders.errors import (
    ConflictError,
    OrderNumberExhaustedError,
    OrderPersistenceError,
)

logger = get_logger(__name__)

ORDER_NUMBER_CONSTRAINTS = ("order_number", "ix_measurement_orders_order_number")
TRANSACTION_REFERENCE_CONSTRAINTS = (
    "transaction_reference",
    "uq_measurement_orders_transaction_reference",
)
TRANSACTION_REFERENCE_IN_USE_MESSAGE = (
    "This transaction reference is already attached to another measurement order"
)


def _is_order_number_collision(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return any(name in message for name in ORDER_NUMBER_CONSTRAINTS)


def _is_transaction_reference_collision(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return any(name in message for name in TRANSACTION_REFERENCE_CONSTRAINTS)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MeasurementOrderRepository:
    """
    Repository for measurement order data access.

    Methods flush but never commit; the service owns the unit of work.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_by_id(
        self, order_id: uuid.UUID, refresh: bool = False
    ) -> Optional[MeasurementOrder]:
        """
        Get order by id.

        Args:
            order_id: Order identifier
            refresh: Reload column values even if the order is in the identity map
        """
        stmt = select(MeasurementOrder).where(MeasurementOrder.id == order_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return await self._scalar_one_or_none(stmt, order_id=str(order_id))

    async def get_by_order_number(self, order_number: str) -> Optional[MeasurementOrder]:
        stmt = select(MeasurementOrder).where(
            MeasurementOrder.order_number == order_number
        )
        return await self._scalar_one_or_none(stmt, order_number=order_number)

    async def get_by_transaction_reference(
        self, transaction_reference: str
    ) -> Optional[MeasurementOrder]:
        stmt = select(MeasurementOrder).where(
            MeasurementOrder.transaction_reference == transaction_reference
        )
        return await self._scalar_one_or_none(
            stmt, transaction_reference=transaction_reference
        )

    async def list_orders(
        self,
        page: int = 1,
        limit: int = 10,
        search_term: Optional[str] = None,
        status: Optional[MeasurementOrderStatus] = None,
        is_guest: Optional[bool] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Tuple[Sequence[MeasurementOrder], int]:
        """
        List orders newest first with filters.

        Args:
            page: 1-based page number
            limit: Page size
            search_term: Case-insensitive match on number, emails and name
            status: Order status filter
            is_guest: Guest/account filter
            user_id: Owning account filter

        Returns:
            Tuple of (orders, total_count)
        """
        conditions = []
        if search_term:
            pattern = f"%{_escape_like(search_term.strip())}%"
            conditions.append(
                or_(
                    MeasurementOrder.order_number.ilike(pattern, escape="\\"),
                    MeasurementOrder.guest_email.ilike(pattern, escape="\\"),
                    MeasurementOrder.email.ilike(pattern, escape="\\"),
                    MeasurementOrder.name.ilike(pattern, escape="\\"),
                )
            )
        if status is not None:
            conditions.append(MeasurementOrder.status == status)
        if is_guest is not None:
            conditions.append(MeasurementOrder.is_guest.is_(is_guest))
        if user_id is not None:
            conditions.append(MeasurementOrder.user_id == user_id)

        try:
            count_stmt = select(func.count(MeasurementOrder.id)).where(*conditions)
            total = (await self.session.execute(count_stmt)).scalar_one()

            stmt = (
                select(MeasurementOrder)
                .where(*conditions)
                .order_by(MeasurementOrder.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            orders = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list measurement orders", error=str(e))
            raise OrderPersistenceError(
                "Failed to list measurement orders", error=str(e)
            ) from e

        return orders, total

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        values: Dict[str, Any],
        number_factory: Callable[[], str],
        max_attempts: int = 5,
    ) -> MeasurementOrder:
        """
        Insert a new order under a freshly generated unique order number.

        A collision on the order number rolls back only the attempt's
        savepoint and retries with a new number.

        Raises:
            OrderNumberExhaustedError: Every attempt collided
            OrderPersistenceError: Any other integrity or database failure
        """
        for attempt in range(1, max_attempts + 1):
            order = MeasurementOrder(order_number=number_factory(), **values)
            try:
                async with self.session.begin_nested():
                    self.session.add(order)
                    await self.session.flush()
            except IntegrityError as e:
                if not _is_order_number_collision(e):
                    logger.error(
                        "Measurement order insert failed - integrity error",
                        error=str(e.orig),
                    )
                    raise OrderPersistenceError(
                        "Order creation failed due to data integrity violation",
                        error=str(e.orig),
                    ) from e
                logger.warning(
                    "Order number collision, regenerating",
                    order_number=order.order_number,
                    attempt=attempt,
                )
                continue
            except SQLAlchemyError as e:
                logger.error("Measurement order insert failed", error=str(e))
                raise OrderPersistenceError(
                    "Order creation failed due to database error",
                    error=str(e),
                ) from e

            logger.info(
                "Measurement order inserted",
                order_id=str(order.id),
                order_number=order.order_number,
                attempt=attempt,
            )
            return order

        raise OrderNumberExhaustedError(
            "Could not generate a unique order number",
            attempts=max_attempts,
        )

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    async def apply_initial_price(
        self,
        order_id: uuid.UUID,
        price: Decimal,
        delivery_fee: Decimal,
        tax: Decimal,
        set_by: str,
        set_at: datetime,
    ) -> Optional[MeasurementOrder]:
        """
        Price an unpriced order in place.

        Only matches while the order is unpaid, not replaced and still has a
        null or zero price.

        Returns:
            The updated order, or None if the guard no longer held
        """
        stmt = (
            update(MeasurementOrder)
            .where(
                MeasurementOrder.id == order_id,
                MeasurementOrder.payment_status != PaymentStatus.PAID,
                MeasurementOrder.is_replaced.is_(False),
                or_(MeasurementOrder.price.is_(None), MeasurementOrder.price == 0),
            )
            .values(
                price=price,
                delivery_fee=delivery_fee,
                tax=tax,
                price_set_at=set_at,
                price_set_by=set_by,
                updated_at=set_at,
            )
            .execution_options(synchronize_session=False)
        )
        rowcount = await self._execute_update(stmt, order_id=str(order_id))
        if rowcount != 1:
            return None
        return await self.get_by_id(order_id, refresh=True)

    async def replace_order(
        self,
        original_id: uuid.UUID,
        replacement_values: Dict[str, Any],
        cancellation_reason: str,
        replaced_at: datetime,
        number_factory: Callable[[], str],
        max_attempts: int = 5,
    ) -> Tuple[MeasurementOrder, MeasurementOrder]:
        """
        Insert a replacement order and supersede the original atomically.

        The original is only marked if it is still unpaid and unreplaced;
        otherwise the savepoint is rolled back, taking the inserted
        replacement with it.

        Returns:
            Tuple of (replacement, original)

        Raises:
            ConflictError: The original was paid or replaced concurrently
        """
        async with self.session.begin_nested():
            replacement = await self.create(
                dict(replacement_values, original_order_id=original_id),
                number_factory,
                max_attempts,
            )

            stmt = (
                update(MeasurementOrder)
                .where(
                    MeasurementOrder.id == original_id,
                    MeasurementOrder.payment_status != PaymentStatus.PAID,
                    MeasurementOrder.is_replaced.is_(False),
                )
                .values(
                    is_replaced=True,
                    replaced_by_order_id=replacement.id,
                    status=MeasurementOrderStatus.CANCELLED,
                    cancelled_at=replaced_at,
                    cancellation_reason=cancellation_reason,
                    updated_at=replaced_at,
                )
                .execution_options(synchronize_session=False)
            )
            rowcount = await self._execute_update(stmt, order_id=str(original_id))
            if rowcount != 1:
                logger.warning(
                    "Replacement aborted, original changed concurrently",
                    order_id=str(original_id),
                )
                raise ConflictError(
                    "The order was paid or replaced while its price was being updated",
                    order_id=str(original_id),
                )

        original = await self.get_by_id(original_id, refresh=True)

        logger.info(
            "Measurement order replaced",
            original_order_id=str(original_id),
            replacement_order_id=str(replacement.id),
            replacement_order_number=replacement.order_number,
        )
        return replacement, original

    async def update_status(
        self,
        order_id: uuid.UUID,
        expected_status: MeasurementOrderStatus,
        values: Dict[str, Any],
    ) -> Optional[MeasurementOrder]:
        """
        Apply a status change if the order still has ``expected_status``.

        Returns:
            The updated order, or None if the status moved underneath us
        """
        stmt = (
            update(MeasurementOrder)
            .where(
                MeasurementOrder.id == order_id,
                MeasurementOrder.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        rowcount = await self._execute_update(stmt, order_id=str(order_id))
        if rowcount != 1:
            return None
        return await self.get_by_id(order_id, refresh=True)

    async def apply_payment_values(
        self,
        order_id: uuid.UUID,
        expected_payment_status: PaymentStatus,
        values: Dict[str, Any],
    ) -> Optional[MeasurementOrder]:
        """
        Apply a gateway result if payment status is still as read.

        Paid results additionally require the order not to be replaced.

        Returns:
            The updated order, or None if the guard no longer held
        """
        conditions = [
            MeasurementOrder.id == order_id,
            MeasurementOrder.payment_status == expected_payment_status,
        ]
        if values.get("payment_status") == PaymentStatus.PAID:
            conditions.append(MeasurementOrder.is_replaced.is_(False))

        stmt = (
            update(MeasurementOrder)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        rowcount = await self._execute_update(stmt, order_id=str(order_id))
        if rowcount != 1:
            return None
        return await self.get_by_id(order_id, refresh=True)

    async def attach_payment_info(
        self,
        order_id: uuid.UUID,
        payment_reference: str,
        transaction_reference: str,
        payment_url: Optional[str],
        gateway_payment_reference: Optional[str] = None,
    ) -> Optional[MeasurementOrder]:
        """
        Record gateway references on a payable order.

        Returns:
            The updated order, or None if it was paid or replaced meanwhile

        Raises:
            ConflictError: The reference is attached to another order
        """
        stmt = (
            update(MeasurementOrder)
            .where(
                MeasurementOrder.id == order_id,
                MeasurementOrder.payment_status != PaymentStatus.PAID,
                MeasurementOrder.is_replaced.is_(False),
            )
            .values(
                payment_reference=payment_reference,
                transaction_reference=transaction_reference,
                gateway_payment_reference=gateway_payment_reference,
                payment_url=payment_url,
            )
            .execution_options(synchronize_session=False)
        )
        rowcount = await self._execute_update(stmt, order_id=str(order_id))
        if rowcount != 1:
            return None
        return await self.get_by_id(order_id, refresh=True)

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Commit failed", error=str(e))
            raise OrderPersistenceError("Failed to save measurement order", error=str(e)) from e

    async def rollback(self) -> None:
        await self.session.rollback()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _scalar_one_or_none(self, stmt, **context) -> Optional[MeasurementOrder]:
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch measurement order", error=str(e), **context)
            raise OrderPersistenceError(
                "Failed to fetch measurement order", error=str(e), **context
            ) from e

    async def _execute_update(self, stmt, **context) -> int:
        try:
            result = await self.session.execute(stmt)
        except IntegrityError as e:
            if _is_transaction_reference_collision(e):
                logger.warning("Transaction reference already in use", **context)
                raise ConflictError(
                    TRANSACTION_REFERENCE_IN_USE_MESSAGE, **context
                ) from e
            logger.error(
                "Measurement order update violated a constraint",
                error=str(e.orig),
                **context,
            )
            raise OrderPersistenceError(
                "Order update failed due to data integrity violation",
                error=str(e.orig),
                **context,
            ) from e
        except SQLAlchemyError as e:
            logger.error("Measurement order update failed", error=str(e), **context)
            raise OrderPersistenceError(
                "Order update failed due to database error", error=str(e), **context
            ) from e
        return result.rowcount
