"""
FundingLedger -- append-only fund/consume/adjust log and the monthly apply batch.

Responsibility:
    Records ledger entries against budgets, derives reserved balances by
    replay, and runs the idempotent "apply monthly contributions" batch for
    plan-and-spend budgets.

Architecture position:
    Kernel > Services -- imperative shell.
    Reads through LedgerSelector; the arithmetic lives in domain/replay.py
    and domain/contribution.py.

Invariants enforced:
    - Entries are inserted, never updated or deleted (db/immutability.py).
    - amount > 0 on every entry; entry_type carries the sign.
    - Budget existence is re-checked inside the workspace before each insert.
    - At most one automatic contribution per budget per month: checked first,
      then enforced by UNIQUE (budget_id, funding_month).  A lost race
      surfaces as DuplicateContributionError, never as a second entry.
    - One budget's failure in the monthly batch never aborts the others.
      Each budget runs inside its own SAVEPOINT.

Failure modes:
    - InvalidAmountError: amount missing, non-positive or a float.
    - BudgetNotFoundError: budget unknown in this workspace.
    - DuplicateContributionError: automatic contribution already recorded.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from budget_kernel.db.types import to_money
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.contribution import (
    add_months,
    compute_monthly_contribution,
    month_key,
    start_of_month,
)
from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.domain.dtos import (
    ApplyContributionsResult,
    FailedBudget,
    FundedBudget,
    LedgerEntryRecord,
    PlanSpendStrategy,
)
from budget_kernel.domain.ports import AuditSink
from budget_kernel.domain.replay import replay_by_budget, replay_reserved
from budget_kernel.exceptions import (
    BudgetLedgerError,
    BudgetNotFoundError,
    ConfigIntegrityError,
    DependencyError,
    DuplicateContributionError,
    InvalidAmountError,
)
from budget_kernel.logging_config import LogContext, get_logger
from budget_kernel.models.budget import Budget, BudgetStatus, BudgetType
from budget_kernel.models.ledger import EntryType, LedgerEntry
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.audit_sink import record_safely
from budget_kernel.services.base import BaseService

logger = get_logger("services.funding_ledger")


def month_bounds(now: datetime) -> tuple[str, datetime, datetime]:
    """(month key, first instant of the month, first instant of the next)."""
    tz = now.tzinfo or timezone.utc
    first = start_of_month(now)
    following = add_months(first, 1)
    return (
        month_key(now),
        datetime(first.year, first.month, 1, tzinfo=tz),
        datetime(following.year, following.month, 1, tzinfo=tz),
    )


def _json_safe(metadata: dict[str, Any] | None) -> dict[str, Any]:
    if not metadata:
        return {}
    safe: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        safe[key] = str(value) if isinstance(value, (UUID, Decimal)) else value
    return safe


class FundingLedger(BaseService[LedgerEntry]):
    """
    Append-only ledger of reserved-money movements.

    Contract:
        Writes flush within the caller's transaction.  Reads return DTOs or
        Decimals, never ORM entities.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_sink = audit_sink
        self._selector = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_fund(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
        related_transaction_id: UUID | None = None,
    ) -> LedgerEntryRecord:
        """Move ``amount`` into the budget's reserved balance."""
        return self._record(
            EntryType.FUND,
            workspace_id,
            budget_id,
            amount,
            actor_id,
            metadata,
            related_transaction_id,
        )

    def record_consume(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
        related_transaction_id: UUID | None = None,
    ) -> LedgerEntryRecord:
        """Spend ``amount`` out of the budget's reserved balance."""
        return self._record(
            EntryType.CONSUME,
            workspace_id,
            budget_id,
            amount,
            actor_id,
            metadata,
            related_transaction_id,
        )

    def record_adjust(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        metadata: dict[str, Any] | None = None,
        related_transaction_id: UUID | None = None,
    ) -> LedgerEntryRecord:
        """Reconciliation top-up of the budget's reserved balance."""
        return self._record(
            EntryType.ADJUST,
            workspace_id,
            budget_id,
            amount,
            actor_id,
            metadata,
            related_transaction_id,
        )

    def record_contribution(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        now: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntryRecord:
        """
        Record the automatic contribution for the month containing ``now``.

        The entry is dated ``now`` so its created_at and funding month agree.
        Used by auto-fund at creation and by the monthly batch.  Runs in its
        own SAVEPOINT so a duplicate leaves the surrounding work intact.

        Raises:
            DuplicateContributionError: The month is already funded.
        """
        now = now or self._clock.now()
        month = month_key(now)
        meta = {"month": month, **(metadata or {})}
        try:
            with self.session.begin_nested():
                return self._record(
                    EntryType.FUND,
                    workspace_id,
                    budget_id,
                    amount,
                    actor_id,
                    meta,
                    None,
                    funding_month=month,
                    created_at=now,
                )
        except IntegrityError as exc:
            if self._contribution_exists(budget_id, month):
                logger.warning(
                    "duplicate_contribution_rejected",
                    extra={"budget_id": str(budget_id), "month": month},
                )
                raise DuplicateContributionError(str(budget_id), month) from exc
            raise

    def _contribution_exists(self, budget_id: UUID, month: str) -> bool:
        stmt = select(LedgerEntry.id).where(
            LedgerEntry.budget_id == budget_id,
            LedgerEntry.funding_month == month,
        )
        return self.session.scalar(stmt) is not None

    def _record(
        self,
        entry_type: EntryType,
        workspace_id: UUID,
        budget_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        metadata: dict[str, Any] | None,
        related_transaction_id: UUID | None,
        funding_month: str | None = None,
        created_at: datetime | None = None,
    ) -> LedgerEntryRecord:
        try:
            value = to_money(amount)
        except (TypeError, ValueError) as exc:
            raise InvalidAmountError("amount", amount) from exc
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError("amount", amount)

        # Re-check so a concurrently deleted budget cannot gain an entry
        exists = self.session.scalar(
            select(Budget.id).where(
                Budget.id == budget_id,
                Budget.workspace_id == workspace_id,
            )
        )
        if exists is None:
            raise BudgetNotFoundError(str(budget_id))

        entry = LedgerEntry(
            workspace_id=workspace_id,
            budget_id=budget_id,
            entry_type=entry_type.value,
            amount=value,
            created_by_id=actor_id,
            created_at=created_at or self._clock.now(),
            related_transaction_id=related_transaction_id,
            funding_month=funding_month,
            entry_metadata=_json_safe(metadata),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_recorded",
            extra={
                "ledger_entry_id": str(entry.id),
                "budget_id": str(budget_id),
                "entry_type": entry_type.value,
            },
        )
        record_safely(
            self._audit_sink,
            f"ledger.{entry_type.value}",
            {"budget_id": str(budget_id), "ledger_entry_id": str(entry.id)},
        )
        return LedgerEntryRecord.from_model(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_reserved(self, budget_id: UUID) -> Decimal:
        """Σfund + Σadjust − Σconsume, replayed from every entry."""
        return replay_reserved(self._selector.rows_for_budget(budget_id))

    def reserved_by_budget(self, workspace_id: UUID) -> dict[UUID, Decimal]:
        """Reserved per budget from one pass over the workspace's entries."""
        return replay_by_budget(self._selector.rows_for_workspace(workspace_id))

    def entries(self, budget_id: UUID) -> list[LedgerEntryRecord]:
        return [
            LedgerEntryRecord.from_model(e)
            for e in self._selector.entries_for_budget(budget_id)
        ]

    def is_funded_for_month(self, budget_id: UUID, now: datetime) -> bool:
        month, first, following = month_bounds(now)
        return self._selector.has_fund_in_month(budget_id, month, first, following)

    # ------------------------------------------------------------------
    # Monthly batch
    # ------------------------------------------------------------------

    def apply_monthly_contributions(
        self,
        workspace_id: UUID,
        actor_id: UUID,
        now: datetime | None = None,
    ) -> ApplyContributionsResult:
        """
        Fund every active plan-and-spend budget for the month containing ``now``.

        Budgets already funded this month, and budgets whose due date has
        passed, are skipped.  Safe to run any number of times per month.
        """
        now = now or self._clock.now()
        month = month_key(now)

        budgets = self.session.scalars(
            select(Budget)
            .where(
                Budget.workspace_id == workspace_id,
                Budget.budget_type == BudgetType.PLAN_SPEND.value,
                Budget.status == BudgetStatus.ACTIVE.value,
            )
            .order_by(Budget.created_at, Budget.id)
        ).all()
        budget_ids = [b.id for b in budgets]

        funded: list[FundedBudget] = []
        skipped: list[UUID] = []
        failed: list[FailedBudget] = []

        for budget_id in budget_ids:
            with LogContext.bind(budget_id=str(budget_id)):
                try:
                    with self.session.begin_nested():
                        outcome = self._apply_one(workspace_id, budget_id, actor_id, now)
                except DuplicateContributionError:
                    skipped.append(budget_id)
                    continue
                except BudgetLedgerError as exc:
                    failed.append(FailedBudget(budget_id, exc.code, str(exc)))
                    logger.warning(
                        "monthly_contribution_failed",
                        extra={"error_code": exc.code},
                        exc_info=True,
                    )
                    continue
                except SQLAlchemyError as exc:
                    failed.append(
                        FailedBudget(budget_id, DependencyError.code, str(exc))
                    )
                    logger.warning(
                        "monthly_contribution_failed",
                        extra={"error_code": DependencyError.code},
                        exc_info=True,
                    )
                    continue

            if outcome is None:
                skipped.append(budget_id)
            else:
                funded.append(outcome)

        result = ApplyContributionsResult(
            month=month,
            funded=tuple(funded),
            skipped=tuple(skipped),
            failed=tuple(failed),
        )
        logger.info(
            "monthly_contributions_applied",
            extra={
                "month": month,
                "funded_count": len(result.funded),
                "skipped_count": len(result.skipped),
                "failed_count": len(result.failed),
            },
        )
        return result

    def _apply_one(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        actor_id: UUID,
        now: datetime,
    ) -> FundedBudget | None:
        if self.is_funded_for_month(budget_id, now):
            return None

        budget = self.session.get(Budget, budget_id)
        if budget is None:
            raise BudgetNotFoundError(str(budget_id))
        config = budget.plan_config
        if config is None or budget.payg_config is not None:
            raise ConfigIntegrityError(
                str(budget.id),
                str(budget.budget_type),
                budget.payg_config is not None,
                config is not None,
            )

        strategy = PlanSpendStrategy.from_model(config)
        amount = compute_monthly_contribution(
            strategy.target_amount,
            strategy.due_date,
            strategy.start_policy,
            now,
            CurrencyRegistry.get_decimal_places(budget.currency),
        )
        if amount <= 0:
            return None

        record = self.record_contribution(
            workspace_id, budget_id, amount, actor_id, now=now
        )
        return FundedBudget(budget_id=budget_id, ledger_entry_id=record.id, amount=amount)
