"""
Personal information resolution for measurement order intake.

Account customers order with the identity and address stored on their
account. Guests submit their details with the order and may ask for an
account to be created from them. Resolution runs in two phases so the
account side effect only happens once the rest of the intake is valid:

1. ``resolve`` reads and validates, raising before anything is written.
2. ``provision`` creates the account when one was requested.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from atelier.core.logging import get_logger
from atelier.services.measurement_orders.errors import (
    AccountExistsError,
    IncompleteProfileError,
    NotFoundError,
    ValidationError,
)
from atelier.services.measurement_orders.ports import AccountDirectory, AccountIdentity

logger = get_logger(__name__)

INCOMPLETE_PROFILE_MESSAGE = (
    "Complete personal information is required. "
    "Please update your details in your account settings."
)
ACCOUNT_NOT_FOUND_MESSAGE = "User account not found. Please sign in again."
ACCOUNT_EXISTS_MESSAGE = "An account with this email already exists"

# (attribute, label) pairs in the order violations are reported
GUEST_REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("email", "Email"),
    ("phone", "Phone number"),
    ("address", "Address"),
    ("city", "City"),
    ("state", "State"),
    ("zip_code", "Zip code"),
    ("country", "Country"),
)

PROFILE_REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("name", "Name"),
    ("email", "Email"),
    ("phone", "Phone number"),
    ("address", "Address"),
    ("city", "City"),
    ("state", "State"),
    ("zip_code", "Zip code"),
    ("country", "Country"),
)


def _clean(value: Any) -> str:
    return str(value).strip() if value is not None else ""


@dataclass(frozen=True)
class PersonalInfo:
    """Customer snapshot copied onto the order."""

    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    def to_columns(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }


@dataclass(frozen=True)
class AccountRequest:
    """Guest request to provision an account alongside the order."""

    email: str
    password: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class IdentityResolution:
    """Outcome of the read-only phase."""

    personal_info: PersonalInfo
    user_id: Optional[uuid.UUID] = None
    account_request: Optional[AccountRequest] = None

    @property
    def requires_provisioning(self) -> bool:
        return self.account_request is not None


@dataclass(frozen=True)
class ResolvedIdentity:
    """Final order origin: either an owning account or a guest email."""

    personal_info: PersonalInfo
    user_id: Optional[uuid.UUID]
    account_created: bool = False

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def guest_email(self) -> Optional[str]:
        return self.personal_info.email if self.is_guest else None

    def origin_columns(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "is_guest": self.is_guest,
            "guest_email": self.guest_email,
        }


def split_full_name(name: Optional[str]) -> Tuple[str, str]:
    """Split a combined name on its first space into (first, last)."""
    cleaned = _clean(name)
    if not cleaned:
        return "", ""
    first, _, rest = cleaned.partition(" ")
    return first, rest.strip()


class PersonalInfoResolver:
    """Resolves the customer snapshot and order origin for intake."""

    def __init__(self, accounts: AccountDirectory, default_country: str = "Nigeria"):
        self.accounts = accounts
        self.default_country = default_country

    async def resolve(
        self, user_id: Optional[uuid.UUID], intake: Any
    ) -> IdentityResolution:
        """
        Validate personal information without side effects.

        Args:
            user_id: Authenticated account id, or None for guests
            intake: Order intake carrying the guest fields

        Returns:
            IdentityResolution describing the snapshot and pending account

        Raises:
            NotFoundError: Authenticated account does not exist
            IncompleteProfileError: Account lacks required details
            ValidationError: Guest fields missing or account request invalid
            AccountExistsError: Guest asked for an account with a taken email
        """
        if user_id is not None:
            return IdentityResolution(
                personal_info=await self.resolve_account(user_id),
                user_id=user_id,
            )

        personal_info, first_name, last_name = self.resolve_guest(intake)

        account_request = None
        if getattr(intake, "create_account", False):
            account_request = await self._prepare_account_request(
                intake, personal_info, first_name, last_name
            )

        return IdentityResolution(
            personal_info=personal_info,
            account_request=account_request,
        )

    async def provision(self, resolution: IdentityResolution) -> ResolvedIdentity:
        """
        Create the requested account, if any, and fix the order origin.

        Raises:
            AccountExistsError: Email was registered since ``resolve`` ran
        """
        if not resolution.requires_provisioning:
            return ResolvedIdentity(
                personal_info=resolution.personal_info,
                user_id=resolution.user_id,
            )

        request = resolution.account_request
        info = resolution.personal_info

        account = await self.accounts.create_account(
            email=request.email,
            password=request.password,
            first_name=request.first_name,
            last_name=request.last_name,
            phone_number=info.phone,
        )
        await self.accounts.update_address(
            account.id,
            street=info.address,
            city=info.city,
            state=info.state,
            zip_code=info.zip_code,
            country=info.country,
        )

        logger.info(
            "Account provisioned from guest checkout",
            account_id=str(account.id),
        )

        return ResolvedIdentity(
            personal_info=info,
            user_id=account.id,
            account_created=True,
        )

    async def resolve_account(self, user_id: uuid.UUID) -> PersonalInfo:
        """Build the snapshot from the stored account."""
        identity = await self.accounts.get_identity(user_id)
        if identity is None:
            logger.warning("Ordering account not found", user_id=str(user_id))
            raise NotFoundError(ACCOUNT_NOT_FOUND_MESSAGE, user_id=str(user_id))

        info = self._snapshot_from_account(identity)

        missing = [
            label
            for attribute, label in PROFILE_REQUIRED_FIELDS
            if not getattr(info, attribute)
        ]
        if missing:
            logger.info(
                "Account profile incomplete for ordering",
                user_id=str(user_id),
                missing_fields=missing,
            )
            raise IncompleteProfileError(
                INCOMPLETE_PROFILE_MESSAGE,
                violations=[f"{label} is missing from your profile" for label in missing],
                user_id=str(user_id),
            )

        return info

    def resolve_guest(self, intake: Any) -> Tuple[PersonalInfo, str, str]:
        """
        Validate and normalize guest-supplied fields.

        Returns:
            The snapshot plus the resolved first and last names

        Raises:
            ValidationError: Listing every missing field
        """
        fallback_first, fallback_last = split_full_name(getattr(intake, "name", None))
        values = {
            "first_name": _clean(getattr(intake, "first_name", None)) or fallback_first,
            "last_name": _clean(getattr(intake, "last_name", None)) or fallback_last,
            "email": _clean(getattr(intake, "email", None)).lower(),
            "phone": _clean(getattr(intake, "phone", None)),
            "address": _clean(getattr(intake, "address", None)),
            "city": _clean(getattr(intake, "city", None)),
            "state": _clean(getattr(intake, "state", None)),
            "zip_code": _clean(getattr(intake, "zip_code", None)),
            "country": _clean(getattr(intake, "country", None)),
        }

        violations: List[str] = [
            f"{label} is required"
            for attribute, label in GUEST_REQUIRED_FIELDS
            if not values[attribute]
        ]
        if violations:
            raise ValidationError(
                "Missing required personal information",
                violations=violations,
            )

        info = PersonalInfo(
            name=f"{values['first_name']} {values['last_name']}".strip(),
            email=values["email"],
            phone=values["phone"],
            address=values["address"],
            city=values["city"],
            state=values["state"],
            zip_code=values["zip_code"],
            country=values["country"],
        )
        return info, values["first_name"], values["last_name"]

    async def _prepare_account_request(
        self,
        intake: Any,
        info: PersonalInfo,
        first_name: str,
        last_name: str,
    ) -> AccountRequest:
        password = getattr(intake, "password", None) or ""
        if not password:
            raise ValidationError(
                "Password is required to create an account",
                violations=["Password is required to create an account"],
            )

        existing = await self.accounts.find_by_email(info.email)
        if existing is not None:
            raise AccountExistsError(ACCOUNT_EXISTS_MESSAGE, email=info.email)

        return AccountRequest(
            email=info.email,
            password=password,
            first_name=first_name,
            last_name=last_name,
        )

    def _snapshot_from_account(self, identity: AccountIdentity) -> PersonalInfo:
        return PersonalInfo(
            name=f"{_clean(identity.first_name)} {_clean(identity.last_name)}".strip(),
            email=_clean(identity.email),
            phone=_clean(identity.phone_number),
            address=_clean(identity.street),
            city=_clean(identity.city),
            state=_clean(identity.state),
            zip_code=_clean(identity.zip_code),
            country=_clean(identity.country) or self.default_country,
        )
