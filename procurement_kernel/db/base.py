"""
Module: procurement_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the string primary key convention, portable column types for money and
    timestamps, and the VersionedBase mixin used for optimistic concurrency.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, repositories/, services/, or outer layers.

Invariants enforced:
    - String(36) UUID primary keys generated with uuid4.
    - Decimal precision: money and quantities are Numeric(38, 9) on
      PostgreSQL and a lossless decimal string on SQLite.  NEVER float.
    - Timestamps always come back timezone-aware UTC, whatever the backend.
    - Aggregates that change state carry an integer ``version`` that is only
      advanced by the repository compare-and-swap.

Failure modes:
    - IntegrityError on duplicate primary key or unique key (translated to
      DuplicateEntityError by the repositories).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from procurement_kernel.domain.values import new_id


class DecimalType(TypeDecorator):
    """
    Exact decimal storage across backends.

    PostgreSQL gets Numeric(38, 9).  SQLite has no exact decimal type, so the
    value is stored as its string form and parsed back into Decimal.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, 9, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value if isinstance(value, Decimal) else Decimal(str(value))


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always loads as UTC.

    SQLite drops tzinfo on the way back; the value is re-attached here so
    domain comparisons never mix naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to UTCDateTime column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4 string.
        - Decimal maps to DecimalType, datetime maps to UTCDateTime.
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: DecimalType(),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )


class VersionedBase(Base):
    """
    Abstract base for aggregates guarded by optimistic concurrency.

    ``version`` starts at 1 on insert; repositories advance it with
    ``UPDATE ... WHERE id = :id AND version = :expected``.
    """

    __abstract__ = True

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
