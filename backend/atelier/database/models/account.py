"""
Customer account model.

Accounts are owned by the identity service; this backend reads them for
personal-info resolution and creates them when a guest opts into an account
at checkout.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from atelier.database.base import BaseModel, enum_column


class AccountRole(str, enum.Enum):
    """Role carried in access tokens and stored on the account."""

    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"

    @property
    def is_staff(self) -> bool:
        return self in {AccountRole.STAFF, AccountRole.ADMIN}


class CustomerAccount(BaseModel):
    """Registered customer identity with the default delivery address."""

    __tablename__ = "customer_accounts"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    street: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    role: Mapped[AccountRole] = mapped_column(
        enum_column(AccountRole, "account_role"),
        nullable=False,
        default=AccountRole.CUSTOMER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_customer_accounts_email", "email", unique=True),
        {"comment": "Customer and staff accounts"},
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
