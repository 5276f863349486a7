"""Base model and mixins for SQLAlchemy models."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator

from bizportal.shared.clock import as_utc, utc_now


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware UTC datetime on every backend.

    SQLite drops tzinfo on the way back; values are re-attached to UTC so
    expiry comparisons never mix naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return as_utc(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return as_utc(value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )


class CreatedAtMixin:
    """Mixin for append-only records that only carry a creation time."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin that adds created_at and updated_at timestamps."""

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class BusinessScopedMixin:
    """Mixin that adds business_id for tenant isolation.

    Scope is always passed explicitly to repositories; there is no
    ambient "current business".
    """

    @declared_attr
    def business_id(cls) -> Mapped[UUID]:
        return mapped_column(
            ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
