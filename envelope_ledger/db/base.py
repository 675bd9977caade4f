"""
Module: envelope_ledger.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent column
    types, and the DocumentBase mixin carrying routing key, version token and
    audit fields.
Architecture position: Ledger > DB.  Lowest-level import target within the
    package.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - UUID primary keys stored as String(36) for cross-database portability.
    - Money is stored as its canonical decimal string (MoneyString) so every
      dialect round-trips it exactly.  NEVER use float for monetary amounts.
    - Timestamps are timezone-aware UTC on every dialect (UTCDateTime).
    - Every document row carries partition_key and an integer version token
      used for optimistic concurrency by the Entity Store.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class MoneyString(TypeDecorator):
    """
    Decimal stored as its canonical fixed-point string.

    SQLite keeps NUMERIC values as binary floats, which silently drops
    digits past 15 significant figures.  Text round-trips exactly on every
    dialect.  No SQL in the ledger compares or sums money columns; totals
    are computed in Python.

    Guarantees:
        - process_bind_param: Decimal -> plain (non-exponent) string.
        - process_result_value: str -> Decimal, unchanged digits.
    """

    impl = String(48)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError(f"Float not allowed for money: {value!r}")
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime on every backend.

    SQLite drops tzinfo on round trip; values are normalised to UTC on the
    way in and re-attached as UTC on the way out, so callers always see
    aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36).
        - Decimal maps to MoneyString.
        - datetime maps to UTCDateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MoneyString(),
        datetime: UTCDateTime(),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class DocumentBase(Base):
    """
    Abstract base for the four ledger documents.

    Contract:
        Each row is addressed by ``(id, partition_key)``.  ``version`` is the
        optimistic concurrency token: the Entity Store increments it on every
        successful write and only updates a row whose stored version equals
        the caller's expected version.

    Guarantees:
        - created_at/created_by are set once at insert.
        - updated_at/updated_by change on every write.
        - is_active is the soft-delete flag; documents are never hard-deleted.
    """

    __abstract__ = True

    partition_key: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
        index=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_by: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_by: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
