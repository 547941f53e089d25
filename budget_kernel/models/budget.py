"""
Module: budget_kernel.models.budget
Responsibility: ORM persistence for budgets and their strategy-specific
    configuration.  A Budget is either pay-as-you-go (monthly cap on
    spending) or plan-and-spend (save a target amount by a due date).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Exactly one config per budget, selected by budget_type.  PaygConfig and
      PlanConfig each carry a UNIQUE budget_id, and BudgetCatalog writes the
      budget and its config inside one SAVEPOINT.  The ORM cannot forbid a
      row with the "other" config, so readers check and raise
      ConfigIntegrityError.
    - budget_type is immutable after INSERT (db/immutability.py).
    - Deleting a budget cascades to its configs, ledger entries and payments
      due (ON DELETE CASCADE at the storage layer).

Failure modes:
    - IntegrityError on a second config row for the same budget.
    - IntegrityError on non-positive monthly_cap / target_amount.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_kernel.db.base import Base, TrackedBase


class BudgetType(str, Enum):
    """Budgeting strategy.  Fixed at creation."""

    PAYG = "payg"
    PLAN_SPEND = "plan_spend"


class BudgetStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class RecurrenceType(str, Enum):
    """How a plan-and-spend target repeats after its due date is paid."""

    NONE = "none"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class StartPolicy(str, Enum):
    """First month that counts toward a plan's contribution schedule."""

    START_THIS_MONTH = "start_this_month"
    START_NEXT_MONTH = "start_next_month"


class Budget(TrackedBase):
    """
    A spending budget attached to one subcategory.

    Contract:
        The config matching budget_type is loaded eagerly with the budget.
        Ledger entries are NOT a relationship here; they are looked up by
        budget_id on demand.

    Guarantees:
        - currency is a 3-character ISO 4217 code validated by the catalog.
        - budget_type never changes once flushed.
    """

    __tablename__ = "budgets"

    __table_args__ = (
        Index("idx_budget_workspace", "workspace_id"),
        Index("idx_budget_subcategory", "subcategory_id"),
        Index("idx_budget_workspace_type", "workspace_id", "budget_type", "status"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    subcategory_id: Mapped[UUID] = mapped_column(
        ForeignKey("subcategories.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Budget currency (ISO 4217)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    budget_type: Mapped[BudgetType] = mapped_column(
        String(20),
        nullable=False,
    )

    status: Mapped[BudgetStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BudgetStatus.ACTIVE,
    )

    payg_config: Mapped["PaygConfig | None"] = relationship(
        back_populates="budget",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    plan_config: Mapped["PlanConfig | None"] = relationship(
        back_populates="budget",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == BudgetStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Budget {self.name} [{self.budget_type}]>"


class PaygConfig(Base):
    """Pay-as-you-go settings: a monthly spending cap."""

    __tablename__ = "payg_configs"

    __table_args__ = (
        CheckConstraint("monthly_cap > 0", name="ck_payg_monthly_cap_positive"),
    )

    budget_id: Mapped[UUID] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    monthly_cap: Mapped[Decimal] = mapped_column(nullable=False)

    # Whether the cap resets every month
    is_recurring: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    budget: Mapped["Budget"] = relationship(back_populates="payg_config")


class PlanConfig(Base):
    """
    Plan-and-spend settings: reach target_amount by due_date.

    The monthly contribution is never stored; it is recomputed from
    target_amount, due_date and start_policy whenever it is needed.
    """

    __tablename__ = "plan_configs"

    __table_args__ = (
        CheckConstraint("target_amount > 0", name="ck_plan_target_amount_positive"),
    )

    budget_id: Mapped[UUID] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    target_amount: Mapped[Decimal] = mapped_column(nullable=False)

    due_date: Mapped[date] = mapped_column(nullable=False)

    recurrence_type: Mapped[RecurrenceType] = mapped_column(
        String(20),
        nullable=False,
        default=RecurrenceType.NONE,
    )

    start_policy: Mapped[StartPolicy] = mapped_column(
        String(20),
        nullable=False,
        default=StartPolicy.START_THIS_MONTH,
    )

    # Whether the plan may draw on the safe-to-spend pool
    allow_use_safe: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    budget: Mapped["Budget"] = relationship(back_populates="plan_config")
