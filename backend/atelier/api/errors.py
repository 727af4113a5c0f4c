"""
Mapping from measurement order domain errors to HTTP responses.
"""

from fastapi import HTTPException, status

from atelier.core.logging import get_logger
from atelier.services.measurement_orders.errors import (
    AccountExistsError,
    ConflictError,
    MeasurementOrderError,
    NotFoundError,
    PriceFinalError,
    ValidationError,
)

logger = get_logger(__name__)


def to_http_exception(error: MeasurementOrderError, **log_context) -> HTTPException:
    """
    Convert a domain error to an HTTPException.

    Validation failures carry every violation in the response detail.
    Price changes on paid orders answer 400 so the storefront can show the
    message inline; other conflicts answer 409.
    """
    if isinstance(error, ValidationError):
        logger.info("Request rejected by validation", error=error.message, **log_context)
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": error.message, "violations": error.violations},
        )

    if isinstance(error, PriceFinalError):
        logger.warning("Price change rejected, order paid", **log_context)
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)

    if isinstance(error, (ConflictError, AccountExistsError)):
        logger.warning("Request conflicts with order state", error=error.message, **log_context)
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)

    if isinstance(error, NotFoundError):
        logger.info("Requested resource not found", error=error.message, **log_context)
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)

    logger.error(
        "Measurement order processing failed",
        error=error.message,
        error_type=type(error).__name__,
        context=error.context,
        **log_context,
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Failed to process measurement order",
    )
