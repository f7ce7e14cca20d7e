"""
Module: points_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the integer primary key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/, domain/.

Invariants enforced:
    - Integer primary keys: ledger rows are referenced by integer ids
      (related_id, promotion_ids), so every model uses an autoincrement
      BigInteger key.
    - Timezone-aware timestamps: AwareDateTime always returns UTC-aware
      datetimes, including on SQLite which stores them naive.  Promotion
      window checks compare these values against an aware Clock.
    - Decimal spend amounts map to Numeric(12, 2).  NEVER use float for
      currency.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from points_kernel.db.types import LongText, Points, Rate, ShortCode, Spend


class AwareDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that round-trips on every backend.

    Contract:
        Values are stored as UTC.  Values read back are always
        timezone-aware UTC datetimes, even where the backend (SQLite)
        drops tzinfo.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Normalize to UTC before storing.  Naive values are taken as UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        """Re-attach UTC to naive values on load."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrement integer primary key.
        - Decimal maps to Numeric(12, 2).
        - datetime maps to AwareDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 2),
        datetime: AwareDateTime(),
        int: BigInteger,
        Points: BigInteger,
        Spend: Numeric(12, 2),
        Rate: Numeric(9, 6),
        ShortCode: String(50),
        LongText: String(1000),
    }

    # BigInteger().with_variant keeps SQLite's rowid autoincrement working
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps.

    Contract:
        created_at is set on INSERT and never changes.  updated_at changes
        on every UPDATE.  Both are audit metadata, not ledger data.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        AwareDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        AwareDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
