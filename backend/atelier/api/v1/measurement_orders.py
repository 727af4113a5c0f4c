"""
Customer-facing measurement order endpoints.

Guests and signed-in customers submit orders here, look them up by order
number for the pay page, and start checkout once a price is set.
"""

from fastapi import APIRouter, HTTPException, Query, status

from atelier.api.deps import CurrentAccount, OptionalAccount, OrderService
from atelier.api.errors import to_http_exception
from atelier.core.logging import get_logger
from atelier.schemas.measurement_orders import (
    CheckoutRequest,
    MeasurementOrderCreate,
    MeasurementOrderDetailResponse,
    MeasurementOrderListResponse,
    MeasurementOrderResponse,
    PaymentSummaryResponse,
)
from atelier.services.measurement_orders.errors import MeasurementOrderError

logger = get_logger(__name__)

router = APIRouter(prefix="/measurement-orders", tags=["measurement-orders"])


@router.post(
    "",
    response_model=MeasurementOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit measurement order",
)
async def create_measurement_order(
    request: MeasurementOrderCreate,
    account: OptionalAccount,
    service: OrderService,
) -> MeasurementOrderResponse:
    """
    Create a measurement order for a guest or the signed-in customer.

    Raises:
        HTTPException: 400 on invalid input, 404 for unknown templates,
            409 if a requested account already exists
    """
    account_id = account.id if account else None
    logger.info(
        "Creating measurement order",
        user_id=str(account_id) if account_id else None,
        template_count=len(request.templates),
    )

    try:
        order = await service.create_order(request, actor_user_id=account_id)
    except MeasurementOrderError as e:
        raise to_http_exception(e, user_id=str(account_id) if account_id else None) from e

    return MeasurementOrderResponse.model_validate(order)


@router.get(
    "/mine",
    response_model=MeasurementOrderListResponse,
    summary="List my measurement orders",
)
async def list_my_measurement_orders(
    account: CurrentAccount,
    service: OrderService,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> MeasurementOrderListResponse:
    try:
        result = await service.list_user_orders(account.id, page=page, limit=limit)
    except MeasurementOrderError as e:
        raise to_http_exception(e, user_id=str(account.id)) from e

    return MeasurementOrderListResponse.model_validate(
        {
            "orders": [MeasurementOrderResponse.model_validate(o) for o in result["orders"]],
            "pagination": result["pagination"],
        }
    )


@router.get(
    "/by-number/{order_number}",
    response_model=MeasurementOrderDetailResponse,
    summary="Get measurement order by number",
)
async def get_measurement_order_by_number(
    order_number: str,
    service: OrderService,
) -> MeasurementOrderDetailResponse:
    """Order details and payment summary for the pay page."""
    try:
        order = await service.get_order_by_number(order_number)
    except MeasurementOrderError as e:
        raise to_http_exception(e, order_number=order_number) from e

    return MeasurementOrderDetailResponse(
        order=MeasurementOrderResponse.model_validate(order),
        payment_summary=PaymentSummaryResponse(**service.payment_summary(order)),
    )


@router.post(
    "/by-number/{order_number}/checkout",
    response_model=MeasurementOrderResponse,
    summary="Initialize measurement order checkout",
)
async def initialize_measurement_order_checkout(
    order_number: str,
    request: CheckoutRequest,
    service: OrderService,
) -> MeasurementOrderResponse:
    """
    Record the gateway transaction for a priced order.

    Raises:
        HTTPException: 404 for unknown orders, 409 if the order was replaced,
            is paid or has no price yet, or if the transaction reference
            belongs to another order
    """
    try:
        order = await service.initialize_checkout(
            order_number,
            transaction_reference=request.transaction_reference,
            payment_url=request.payment_url,
            payment_reference=request.payment_reference,
            gateway_payment_reference=request.gateway_payment_reference,
        )
    except MeasurementOrderError as e:
        raise to_http_exception(e, order_number=order_number) from e

    return MeasurementOrderResponse.model_validate(order)
