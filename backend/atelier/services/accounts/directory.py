"""
SQLAlchemy-backed account directory.

Reads identities for personal-info resolution and provisions accounts for
guests who opt in at checkout. Writes share the caller's session so an
account created during intake commits or rolls back with the order.
"""

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.logging import get_logger
from atelier.core.security import hash_password
from atelier.database.models.account import AccountRole, CustomerAccount
from atelier.services.measurement_orders.errors import (
    AccountExistsError,
    NotFoundError,
    OrderPersistenceError,
)
from atelier.services.measurement_orders.ports import AccountIdentity

logger = get_logger(__name__)


def _to_identity(account: CustomerAccount) -> AccountIdentity:
    return AccountIdentity(
        id=account.id,
        email=account.email,
        first_name=account.first_name,
        last_name=account.last_name,
        phone_number=account.phone_number,
        street=account.street,
        city=account.city,
        state=account.state,
        zip_code=account.zip_code,
        country=account.country,
    )


class SQLAccountDirectory:
    """Account directory over the ``customer_accounts`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_identity(self, user_id: uuid.UUID) -> Optional[AccountIdentity]:
        account = await self._get(user_id)
        if account is None or not account.is_active:
            return None
        return _to_identity(account)

    async def find_by_email(self, email: str) -> Optional[AccountIdentity]:
        stmt = select(CustomerAccount).where(
            func.lower(CustomerAccount.email) == email.strip().lower()
        )
        try:
            account = (await self.session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Account lookup by email failed", error=str(e))
            raise OrderPersistenceError("Failed to look up account", error=str(e)) from e
        return _to_identity(account) if account else None

    async def create_account(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone_number: str,
    ) -> AccountIdentity:
        """
        Create a customer account.

        Raises:
            AccountExistsError: Email already registered
        """
        account = CustomerAccount(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            role=AccountRole.CUSTOMER,
            is_active=True,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(account)
                await self.session.flush()
        except IntegrityError as e:
            logger.info("Account creation rejected, email taken", email=account.email)
            raise AccountExistsError(
                "An account with this email already exists",
                email=account.email,
            ) from e

        logger.info("Customer account created", account_id=str(account.id))
        return _to_identity(account)

    async def update_address(
        self,
        user_id: uuid.UUID,
        *,
        street: str,
        city: str,
        state: str,
        zip_code: str,
        country: str,
    ) -> AccountIdentity:
        account = await self._get(user_id)
        if account is None:
            raise NotFoundError("User account not found", user_id=str(user_id))

        account.street = street
        account.city = city
        account.state = state
        account.zip_code = zip_code
        account.country = country
        await self.session.flush()
        return _to_identity(account)

    async def _get(self, user_id: uuid.UUID) -> Optional[CustomerAccount]:
        try:
            return await self.session.get(CustomerAccount, user_id)
        except SQLAlchemyError as e:
            logger.error("Account lookup failed", user_id=str(user_id), error=str(e))
            raise OrderPersistenceError(
                "Failed to look up account", user_id=str(user_id), error=str(e)
            ) from e
