"""
Declarative base for the budget ledger's ORM models.

Architecture position:
    Kernel > DB.  Every model module imports from here; this module imports
    nothing from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Primary keys are uuid4 values stored as 36-character strings, so the
      same schema runs on PostgreSQL and SQLite.
    - ``Decimal`` columns are Numeric(38, 9).  Floats never reach a money
      column.
    - Datetimes are timezone-aware.
    - Rows written on behalf of a user (TrackedBase) carry the actor id.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Root of every model: a uuid4 ``id`` and the shared type map."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows created by an actor: budgets, accounts, transactions.

    Services stamp ``created_at`` from their injected Clock so month
    boundaries stay deterministic; the server defaults only cover rows
    written outside a service.
    """

    __abstract__ = True

    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


UUID = PyUUID
