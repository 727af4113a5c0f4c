"""
Collaborator contracts consumed by the measurement order core.

The core only depends on these protocols and value types; the SQLAlchemy
and SES backed implementations live in their own service packages and tests
substitute mocks.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Protocol


@dataclass(frozen=True)
class AccountIdentity:
    """Identity and default address of a registered account."""

    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class CatalogTemplate:
    """A measurement template as exposed by the catalog."""

    id: str
    title: str
    fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LocationFee:
    location: str
    fee: Decimal


@dataclass(frozen=True)
class ShippingConfig:
    """Delivery fees per shipping location and the free-shipping threshold."""

    location_fees: List[LocationFee] = field(default_factory=list)
    free_shipping_threshold: Decimal = Decimal("0")

    def fee_for(self, location: str) -> Optional[Decimal]:
        """Configured fee for ``location``, matched case-insensitively."""
        wanted = location.strip().lower()
        for entry in self.location_fees:
            if entry.location.strip().lower() == wanted:
                return entry.fee
        return None


class AccountDirectory(Protocol):
    async def get_identity(self, user_id: uuid.UUID) -> Optional[AccountIdentity]:
        ...

    async def find_by_email(self, email: str) -> Optional[AccountIdentity]:
        ...

    async def create_account(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone_number: str,
    ) -> AccountIdentity:
        ...

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
        ...


class TemplateCatalog(Protocol):
    async def get_template_by_id(self, template_id: uuid.UUID) -> Optional[CatalogTemplate]:
        ...


class ShippingSettingsProvider(Protocol):
    async def get_settings(self) -> ShippingConfig:
        """Current shipping settings; raises DependencyDegraded when unreachable."""
        ...


class Notifier(Protocol):
    async def send_price_quote(self, order: Any) -> None:
        ...

    async def send_payment_confirmation(self, order: Any) -> None:
        ...
