"""
Module: budget_kernel.models.transaction
Responsibility: ORM persistence for money accounts and the transactions
    posted against them.  The ledger reads these for balances and spending,
    and writes exactly one kind of row: the expense created when a payment
    due is confirmed.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Transaction.amount is always positive; the sign is carried by
      transaction_type (ck_transaction_amount_positive).
"""

import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import TrackedBase


class TransactionType(str, Enum):
    """Direction of a transaction relative to its account."""

    EXPENSE = "expense"
    INCOME = "income"


class Account(TrackedBase):
    """
    A money account (checking, savings, cash).

    Guarantees:
        - balance = opening_balance + sum(income) - sum(expense).
        - Archived accounts are excluded from workspace totals.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_workspace", "workspace_id"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    is_archived: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.currency})>"


class Transaction(TrackedBase):
    """A dated income or expense against one account."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        Index("idx_transaction_workspace_date", "workspace_id", "date"),
        Index("idx_transaction_subcategory", "subcategory_id", "date"),
        Index("idx_transaction_account", "account_id"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    subcategory_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("subcategories.id", ondelete="SET NULL"),
        nullable=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(20),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    date: Mapped[datetime.date] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_type} {self.date}>"
