"""
Module: budget_kernel.models.ledger
Responsibility: ORM persistence for the append-only funding ledger.  Each
    row moves money into (fund, adjust) or out of (consume) a budget's
    reserved balance.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Append-only.  UPDATE and DELETE of individual rows are rejected by ORM
      listeners in db/immutability.py.  Rows disappear only through the
      ON DELETE CASCADE from budgets.
    - amount > 0 always (ck_ledger_amount_positive).  The sign lives in
      entry_type, never in the stored value.
    - At most one automatic contribution per budget per month:
      UNIQUE (budget_id, funding_month).  funding_month is NULL on every
      other entry, and NULLs never collide.
    - Reserved is never stored.  It is Σfund + Σadjust − Σconsume, recomputed
      by replay (domain/replay.py).

Failure modes:
    - IntegrityError on a duplicate (budget_id, funding_month).
    - IntegrityError on a non-positive amount or an unknown budget_id.
    - ImmutabilityViolationError on UPDATE/DELETE through the ORM.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base, UUIDString


class EntryType(str, Enum):
    """Direction of a ledger entry's effect on reserved."""

    FUND = "fund"
    CONSUME = "consume"
    ADJUST = "adjust"


class LedgerEntry(Base):
    """
    One immutable movement of reserved money for a budget.

    Guarantees:
        - created_at is stamped by the writing service from its Clock.
        - entry_metadata may carry month ("YYYY-MM"), funding_account_id and
          auto_funded; all keys are optional.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
        UniqueConstraint(
            "budget_id",
            "funding_month",
            name="uq_ledger_budget_funding_month",
        ),
        Index("idx_ledger_workspace", "workspace_id"),
        Index("idx_ledger_budget_created", "budget_id", "created_at"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    budget_id: Mapped[UUID] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
    )

    entry_type: Mapped[EntryType] = mapped_column(
        String(20),
        nullable=False,
    )

    # Always positive
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    related_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Automatic contribution month, "YYYY-MM"
    funding_month: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
    )

    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entry_type} budget={self.budget_id}>"
