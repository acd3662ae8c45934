"""
Module: ledger_kernel.db.base
Responsibility: Declarative base and column types shared by every ORM table.
Architecture position: Kernel > DB. Lowest-level import target of the
    persistence layer; MUST NOT import from repositories or services.

Invariants enforced:
    - Timestamps round-trip timezone-aware in UTC on every dialect. SQLite
      drops tzinfo on storage, so UTCDateTime normalises on the way in and
      re-attaches UTC on the way out.
    - Money columns are BigInteger minor units; nothing is stored as float.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import JSON, BigInteger, Date, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as UTC.

    Contract:
        Rejects naive datetimes on bind. Always returns aware UTC values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime cannot be stored: {value!r}")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Declarative base for all ledger tables.

    Guarantees:
        - id is a caller-supplied string primary key (ids come from the
          injected IdGenerator, never from the database).
        - datetime maps to UTCDateTime, date to Date, int to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        date: Date(),
        int: BigInteger,
        Decimal: Numeric(38, 9),
    }

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
