"""
Staff endpoints for measurement orders: listing, pricing and progress.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from atelier.api.deps import CurrentStaff, OrderService
from atelier.api.errors import to_http_exception
from atelier.core.logging import get_logger
from atelier.schemas.measurement_orders import (
    MeasurementOrderListResponse,
    MeasurementOrderResponse,
    SetPriceRequest,
    SetPriceResponse,
    StatusUpdateRequest,
)
from atelier.services.measurement_orders.enums import MeasurementOrderStatus
from atelier.services.measurement_orders.errors import MeasurementOrderError

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/measurement-orders", tags=["admin-measurement-orders"])


@router.get(
    "",
    response_model=MeasurementOrderListResponse,
    summary="List measurement orders",
)
async def list_measurement_orders(
    staff: CurrentStaff,
    service: OrderService,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100, description="Order number, email or name"),
    status_filter: Optional[MeasurementOrderStatus] = Query(None, alias="status"),
    is_guest: Optional[bool] = Query(None),
) -> MeasurementOrderListResponse:
    try:
        result = await service.list_orders(
            page=page,
            limit=limit,
            search_term=search,
            status=status_filter,
            is_guest=is_guest,
        )
    except MeasurementOrderError as e:
        raise to_http_exception(e, staff_id=str(staff.id)) from e

    return MeasurementOrderListResponse.model_validate(
        {
            "orders": [MeasurementOrderResponse.model_validate(o) for o in result["orders"]],
            "pagination": result["pagination"],
        }
    )


@router.get(
    "/{order_id}",
    response_model=MeasurementOrderResponse,
    summary="Get measurement order",
)
async def get_measurement_order(
    order_id: UUID,
    staff: CurrentStaff,
    service: OrderService,
) -> MeasurementOrderResponse:
    try:
        order = await service.get_order(order_id)
    except MeasurementOrderError as e:
        raise to_http_exception(e, order_id=str(order_id)) from e
    return MeasurementOrderResponse.model_validate(order)


@router.post(
    "/{order_id}/price",
    response_model=SetPriceResponse,
    summary="Set measurement order price",
)
async def set_measurement_order_price(
    order_id: UUID,
    request: SetPriceRequest,
    staff: CurrentStaff,
    service: OrderService,
) -> SetPriceResponse:
    """
    Price an order. A previously priced order is replaced by a new order
    carrying the new price, and the customer is emailed a fresh quote.

    Raises:
        HTTPException: 400 if the order is paid or the price invalid,
            404 if missing, 409 if replaced or changed concurrently
    """
    logger.info(
        "Setting measurement order price",
        order_id=str(order_id),
        staff_id=str(staff.id),
        price=str(request.price),
    )

    try:
        result = await service.set_price(order_id, Decimal(request.price), set_by=staff.email)
    except MeasurementOrderError as e:
        raise to_http_exception(e, order_id=str(order_id), staff_id=str(staff.id)) from e

    if result.replaced:
        message = (
            f"Price updated. Order {result.original_order.order_number} was replaced "
            f"by {result.order.order_number}."
        )
    else:
        message = "Price set successfully."

    return SetPriceResponse(
        order=MeasurementOrderResponse.model_validate(result.order),
        replaced=result.replaced,
        original_order_id=result.original_order.id if result.original_order else None,
        free_shipping_applied=result.quote.free_shipping_applied,
        message=message,
    )


@router.patch(
    "/{order_id}/status",
    response_model=MeasurementOrderResponse,
    summary="Update measurement order status",
)
async def update_measurement_order_status(
    order_id: UUID,
    request: StatusUpdateRequest,
    staff: CurrentStaff,
    service: OrderService,
) -> MeasurementOrderResponse:
    try:
        order = await service.update_status(order_id, request.status)
    except MeasurementOrderError as e:
        raise to_http_exception(e, order_id=str(order_id), staff_id=str(staff.id)) from e

    logger.info(
        "Measurement order status changed by staff",
        order_id=str(order_id),
        staff_id=str(staff.id),
        status=order.status.value,
    )
    return MeasurementOrderResponse.model_validate(order)
