"""
Pytest configuration and shared test fixtures.

Tests run against a throwaway SQLite database (aiosqlite driver) created
from the ORM metadata, so repository and lifecycle tests exercise real SQL
including the conditional updates and savepoints.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("APP_STOREFRONT_BASE_URL", "https://shop.test")
os.environ.setdefault("APP_PAYMENT_WEBHOOK_SECRET", "whsec-test")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from atelier.database.base import Base
from atelier.database.connection import create_engine
from atelier.database.models import (
    AccountRole,
    CustomerAccount,
    MeasurementTemplate,
    ShippingSettingsRecord,
)


class FixedClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 3, 14, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def fixed_clock() -> FixedClock:
    """
    Clock used by lifecycle and order number generation in tests.

    Returns:
        FixedClock: Callable returning advancing UTC datetimes
    """
    return FixedClock()


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a file-backed SQLite engine with all tables.

    Yields:
        AsyncEngine: Engine bound to a fresh database
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'atelier-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory matching the application's session settings.
    """
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a database session for a single test.

    Yields:
        AsyncSession: Session on the test database
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_account(db_session: AsyncSession) -> Callable[..., Any]:
    """
    Factory persisting a customer account.

    Returns:
        Async callable accepting column overrides
    """

    async def _make(**overrides: Any) -> CustomerAccount:
        values = {
            "email": f"customer-{uuid.uuid4().hex[:8]}@example.com",
            "password_hash": None,
            "first_name": "Ada",
            "last_name": "Okafor",
            "phone_number": "+2348012345678",
            "street": "12 Admiralty Way",
            "city": "Lekki",
            "state": "Lagos",
            "zip_code": "106104",
            "country": "Nigeria",
            "role": AccountRole.CUSTOMER,
            "is_active": True,
        }
        values.update(overrides)
        account = CustomerAccount(**values)
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest.fixture
def make_template(db_session: AsyncSession) -> Callable[..., Any]:
    """
    Factory persisting a measurement template.

    Returns:
        Async callable accepting a title and field names
    """

    async def _make(
        title: str = "Senator Top",
        fields: tuple = ("chest", "waist"),
        is_active: bool = True,
    ) -> MeasurementTemplate:
        template = MeasurementTemplate(
            title=title,
            fields=[{"name": name, "unit": "in"} for name in fields],
            is_active=is_active,
        )
        db_session.add(template)
        await db_session.commit()
        return template

    return _make


@pytest.fixture
def make_shipping_settings(db_session: AsyncSession) -> Callable[..., Any]:
    """
    Factory persisting the shipping settings row.

    Returns:
        Async callable accepting location fees and a threshold
    """

    async def _make(
        location_fees: Optional[dict] = None,
        free_shipping_threshold: Decimal = Decimal("0"),
    ) -> ShippingSettingsRecord:
        fees = location_fees if location_fees is not None else {"Lagos": 1000, "Abuja": 2500}
        record = ShippingSettingsRecord(
            location_fees=[
                {"location": location, "fee": fee} for location, fee in fees.items()
            ],
            free_shipping_threshold=free_shipping_threshold,
        )
        db_session.add(record)
        await db_session.commit()
        return record

    return _make
