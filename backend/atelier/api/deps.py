"""
FastAPI dependencies for authentication, authorization and services.

Bearer tokens are verified here; issuing them belongs to the account
service. Staff endpoints require an active account whose role is staff or
admin.
"""

from functools import lru_cache
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger, set_user_id
from atelier.core.security import TokenError, decode_token
from atelier.database.connection import get_db
from atelier.database.models.account import CustomerAccount
from atelier.services.measurement_orders.service import (
    MeasurementOrderService,
    build_measurement_order_service,
)
from atelier.services.notifications.notifier import MeasurementOrderNotifier

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _load_account(token: str, db: AsyncSession) -> CustomerAccount:
    try:
        payload = decode_token(token)
        account_id = UUID(str(payload.get("sub")))
    except TokenError as e:
        logger.warning("Authentication failed: token rejected", code=e.code)
        raise _credentials_exception()
    except ValueError:
        logger.warning("Authentication failed: invalid subject claim")
        raise _credentials_exception()

    try:
        account = await db.get(CustomerAccount, account_id)
    except SQLAlchemyError as e:
        logger.error(
            "Database error during account retrieval",
            account_id=str(account_id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    if account is None:
        logger.warning("Authentication failed: account not found", account_id=str(account_id))
        raise _credentials_exception()

    if not account.is_active:
        logger.warning("Authentication failed: account inactive", account_id=str(account_id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    set_user_id(str(account.id))
    return account


async def get_current_account(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CustomerAccount:
    """
    Validate the bearer token and return the authenticated account.

    Raises:
        HTTPException: 401 if the token is missing or invalid, 403 if inactive
    """
    if credentials is None:
        logger.warning("Authentication failed: no credentials provided")
        raise _credentials_exception()
    return await _load_account(credentials.credentials, db)


async def get_optional_account(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[CustomerAccount]:
    """Return the authenticated account, or None for anonymous callers."""
    if credentials is None:
        return None
    return await _load_account(credentials.credentials, db)


async def get_current_staff(
    account: Annotated[CustomerAccount, Depends(get_current_account)],
) -> CustomerAccount:
    """
    Require a staff or admin account.

    Raises:
        HTTPException: 403 for customer accounts
    """
    if not account.role.is_staff:
        logger.warning(
            "Authorization failed: staff role required",
            account_id=str(account.id),
            role=account.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return account


@lru_cache
def get_notifier() -> MeasurementOrderNotifier:
    return MeasurementOrderNotifier()


async def get_measurement_order_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    notifier: Annotated[MeasurementOrderNotifier, Depends(get_notifier)],
) -> MeasurementOrderService:
    return build_measurement_order_service(db, notifier=notifier)


CurrentAccount = Annotated[CustomerAccount, Depends(get_current_account)]
OptionalAccount = Annotated[Optional[CustomerAccount], Depends(get_optional_account)]
CurrentStaff = Annotated[CustomerAccount, Depends(get_current_staff)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
OrderService = Annotated[MeasurementOrderService, Depends(get_measurement_order_service)]
