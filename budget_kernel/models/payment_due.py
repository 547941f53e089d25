"""
Module: budget_kernel.models.payment_due
Responsibility: ORM persistence for payments a plan-and-spend budget expects
    to make on its due date.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - pending -> confirmed exactly once.  Once confirmed, every column is
      frozen by the ORM listener in db/immutability.py.
    - One payment due per budget per due date
      (uq_payment_due_budget_date).
    - transaction_id is set if and only if status is confirmed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base


class PaymentDueStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class PaymentDue(Base):
    """An expected payment for a plan-and-spend budget."""

    __tablename__ = "payments_due"

    __table_args__ = (
        CheckConstraint(
            "amount_expected > 0",
            name="ck_payment_due_amount_positive",
        ),
        UniqueConstraint("budget_id", "due_date", name="uq_payment_due_budget_date"),
        Index("idx_payment_due_workspace_status", "workspace_id", "status"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    budget_id: Mapped[UUID] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
    )

    due_date: Mapped[date] = mapped_column(nullable=False)

    amount_expected: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[PaymentDueStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentDueStatus.PENDING,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == PaymentDueStatus.CONFIRMED

    def __repr__(self) -> str:
        return f"<PaymentDue {self.due_date} [{self.status}]>"
