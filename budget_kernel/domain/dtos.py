"""
DTOs -- Pure domain data transfer objects for the budget ledger.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    creation/update inputs, the budget strategy union, budget and ledger
    records, listing rows, progress, workspace figures and batch results.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service layer (never from domain logic).

Invariants enforced:
    - A budget's strategy is exactly one of PaygStrategy or PlanSpendStrategy.
      There is no "budget with optional configs" shape outside the ORM.
    - Services return DTOs, never ORM entities.

Data flow:
    CreateBudgetInput -> BudgetInfo -> BudgetListing
    LedgerEntry (ORM) -> LedgerEntryRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

from budget_kernel.domain.contribution import START_THIS_MONTH

if TYPE_CHECKING:
    from budget_kernel.models.budget import PaygConfig, PlanConfig
    from budget_kernel.models.ledger import LedgerEntry as LedgerEntryModel
    from budget_kernel.models.payment_due import PaymentDue as PaymentDueModel


def _value(enum_or_str: Any) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class CreateBudgetInput:
    """
    Request to create a budget.

    ``amount`` is the monthly cap for PAYG and the target amount for
    PLAN_SPEND.  ``due_date`` accepts a date, ``YYYY-MM`` or ``YYYY-MM-DD``.
    """

    subcategory_id: UUID
    currency: str
    budget_type: str
    amount: Decimal
    name: str | None = None
    due_date: date | str | None = None
    recurrence_type: str = "none"
    start_policy: str = START_THIS_MONTH
    allow_use_safe: bool = False
    is_recurring: bool = False
    auto_fund: bool = False
    funding_account_id: UUID | None = None


@dataclass(frozen=True)
class BudgetPatch:
    """Fields update() may change.  None means "leave as is"."""

    name: str | None = None
    monthly_cap: Decimal | None = None
    is_recurring: bool | None = None
    target_amount: Decimal | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.name, self.monthly_cap, self.is_recurring, self.target_amount)
        )


# =============================================================================
# Budget strategy (tagged union)
# =============================================================================


@dataclass(frozen=True)
class PaygStrategy:
    """Pay-as-you-go: cap spending per month."""

    monthly_cap: Decimal
    is_recurring: bool
    kind: Literal["payg"] = "payg"

    @classmethod
    def from_model(cls, config: PaygConfig) -> PaygStrategy:
        return cls(monthly_cap=config.monthly_cap, is_recurring=config.is_recurring)


@dataclass(frozen=True)
class PlanSpendStrategy:
    """Plan-and-spend: reserve target_amount by due_date."""

    target_amount: Decimal
    due_date: date
    recurrence_type: str
    start_policy: str
    allow_use_safe: bool
    kind: Literal["plan_spend"] = "plan_spend"

    @classmethod
    def from_model(cls, config: PlanConfig) -> PlanSpendStrategy:
        return cls(
            target_amount=config.target_amount,
            due_date=config.due_date,
            recurrence_type=_value(config.recurrence_type),
            start_policy=_value(config.start_policy),
            allow_use_safe=config.allow_use_safe,
        )


BudgetStrategy = PaygStrategy | PlanSpendStrategy


# =============================================================================
# Budget records
# =============================================================================


@dataclass(frozen=True)
class BudgetInfo:
    """A budget together with its one strategy."""

    id: UUID
    workspace_id: UUID
    subcategory_id: UUID
    name: str
    currency: str
    budget_type: str
    status: str
    created_at: datetime
    strategy: BudgetStrategy

    @property
    def is_plan_spend(self) -> bool:
        return isinstance(self.strategy, PlanSpendStrategy)


class ProgressState(str, Enum):
    ON_TRACK = "on_track"
    OVER_BUDGET = "over_budget"
    FUNDED = "funded"
    PAID = "paid"


@dataclass(frozen=True)
class BudgetProgress:
    """
    Progress toward a cap or target.

    ``ratio`` is uncapped (over budget is a real state); ``display_ratio``
    is capped at 1 for rendering.
    """

    ratio: Decimal
    display_ratio: Decimal
    state: ProgressState


@dataclass(frozen=True)
class BudgetListing:
    """
    One row of the budget list.

    A corrupt budget (missing or mismatched config) still yields a row:
    ``strategy`` and ``progress`` are None and ``integrity_error`` explains
    why, so callers can offer delete-and-recreate instead of wrong numbers.
    """

    id: UUID
    workspace_id: UUID
    subcategory_id: UUID
    name: str
    currency: str
    budget_type: str
    status: str
    created_at: datetime
    strategy: BudgetStrategy | None
    current_reserved: Decimal
    spending_amount: Decimal
    progress: BudgetProgress | None = None
    monthly_contribution: Decimal | None = None
    integrity_error: str | None = None

    @property
    def is_degraded(self) -> bool:
        return self.integrity_error is not None


# =============================================================================
# Ledger
# =============================================================================


@dataclass(frozen=True)
class LedgerEntryRecord:
    """Read-side DTO for one ledger entry."""

    id: UUID
    workspace_id: UUID
    budget_id: UUID
    entry_type: str
    amount: Decimal
    created_by_id: UUID
    created_at: datetime
    related_transaction_id: UUID | None = None
    funding_month: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: LedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            id=model.id,
            workspace_id=model.workspace_id,
            budget_id=model.budget_id,
            entry_type=_value(model.entry_type),
            amount=model.amount,
            created_by_id=model.created_by_id,
            created_at=model.created_at,
            related_transaction_id=model.related_transaction_id,
            funding_month=model.funding_month,
            metadata=dict(model.entry_metadata or {}),
        )


@dataclass(frozen=True)
class FundedBudget:
    budget_id: UUID
    ledger_entry_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class FailedBudget:
    budget_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class ApplyContributionsResult:
    """
    Outcome of one monthly apply run.

    One budget's failure never aborts the run; ``has_failures`` tells the
    caller to surface an overall error anyway.
    """

    month: str
    funded: tuple[FundedBudget, ...] = ()
    skipped: tuple[UUID, ...] = ()
    failed: tuple[FailedBudget, ...] = ()

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


# =============================================================================
# Aggregation
# =============================================================================


@dataclass(frozen=True)
class ConvertedFigure:
    """
    An amount converted into a reporting currency.

    ``is_approximate`` is set when any source currency fell back to a 1:1
    rate because its lookup failed.
    """

    amount: Decimal
    currency: str
    is_approximate: bool = False
    approximate_currencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class DashboardFigures:
    """Workspace-level money figures, all in the reporting currency."""

    currency: str
    total_balance: Decimal
    reserved_total: Decimal
    available_cash: Decimal
    due_this_month: Decimal
    pending_payments_count: int
    is_approximate: bool = False
    approximate_currencies: tuple[str, ...] = ()


# =============================================================================
# Payments
# =============================================================================


@dataclass(frozen=True)
class PaymentDueInfo:
    id: UUID
    budget_id: UUID
    due_date: date
    amount_expected: Decimal
    status: str
    confirmed_at: datetime | None = None
    transaction_id: UUID | None = None

    @classmethod
    def from_model(cls, model: PaymentDueModel) -> PaymentDueInfo:
        return cls(
            id=model.id,
            budget_id=model.budget_id,
            due_date=model.due_date,
            amount_expected=model.amount_expected,
            status=_value(model.status),
            confirmed_at=model.confirmed_at,
            transaction_id=model.transaction_id,
        )


@dataclass(frozen=True)
class ConfirmationResult:
    payment_due_id: UUID
    transaction_id: UUID
    ledger_entry_id: UUID
    next_due_date: date | None = None


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    email: str | None = None


@dataclass(frozen=True)
class AccountBalance:
    """opening_balance + Σincome − Σexpense for one account."""

    account_id: UUID
    currency: str
    balance: Decimal
