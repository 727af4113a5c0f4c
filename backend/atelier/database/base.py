"""
SQLAlchemy declarative base and common model mixins.

Column types are chosen to be portable: UUIDs use the generic ``Uuid`` type
(native on PostgreSQL, CHAR(32) elsewhere) and JSON payloads use ``JSON``
with a JSONB variant on PostgreSQL.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Type

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

# Portable JSON column type
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def enum_column(enum_cls: Type[Enum], name: str) -> SQLEnum:
    """
    Build an Enum column type that persists member values, not names.

    Args:
        enum_cls: Python enum class
        name: Database type name

    Returns:
        SQLAlchemy Enum type
    """
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models with async support.
    """

    __abstract__ = True

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """
        Convert model instance to a JSON-friendly dictionary.

        Args:
            exclude: Set of column names to exclude from output

        Returns:
            Dictionary representation of the model
        """
        exclude = exclude or set()
        result: Dict[str, Any] = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                result[column.key] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[column.key] = str(value)
            elif isinstance(value, Decimal):
                result[column.key] = float(value)
            elif isinstance(value, Enum):
                result[column.key] = value.value
            else:
                result[column.key] = value

        return result

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.key, None)
            if value is not None:
                pk_values.append(f"{column.key}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "no primary key"
        return f"<{self.__class__.__name__}({pk_str})>"


class TimestampMixin:
    """
    Mixin for automatic timestamp management.

    Values are set application-side so ordering by ``created_at`` is stable
    at sub-second resolution; the server default covers raw SQL inserts.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow,
            comment="Timestamp when record was last updated",
        )


class UUIDMixin:
    """
    Mixin for UUID primary key generated application-side.
    """

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False,
            comment="Unique identifier for the record",
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base model with UUID primary key and timestamps.

    Example:
        class CustomerAccount(BaseModel):
            __tablename__ = "customer_accounts"

            email: Mapped[str] = mapped_column(String(255), unique=True)
    """

    __abstract__ = True
