"""
BudgetCatalog -- budget and strategy-config lifecycle.

Responsibility:
    Validated creation, update, archive, delete and listing of budgets.
    Creation writes the budget and its one config atomically and, on
    request, funds a plan-and-spend budget for the current month.

Architecture position:
    Kernel > Services -- imperative shell.
    Uses domain/contribution.py for the creation-time month check and the
    auto-fund amount, FundingLedger for the auto-fund entry and reserved
    balances, and a TransactionStore for current-month spending.

Invariants enforced:
    - Budget and config are written inside one SAVEPOINT.  A config failure
      leaves no budget row and the original error propagates.
    - Exactly one config matching budget_type.  Readers that find anything
      else raise ConfigIntegrityError; list() degrades that one row instead
      of failing the listing or reporting an amount of 0.
    - Type is immutable after creation.
    - delete() is a single statement scoped by budget id AND workspace id.
      Zero rows is a ConflictError that does not reveal which id mismatched.
    - Auto-fund failure is logged and swallowed; the budget still exists.

Failure modes:
    - ValidationError (and subclasses) on bad input.
    - SubcategoryNotFoundError / BudgetNotFoundError on unknown ids.
    - ConflictError on a delete that matched nothing.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from budget_kernel.db.types import to_money
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.contribution import (
    add_months,
    compute_monthly_contribution,
    parse_due_date,
    start_of_month,
    total_months,
)
from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.domain.dtos import (
    BudgetInfo,
    BudgetListing,
    BudgetPatch,
    BudgetStrategy,
    CreateBudgetInput,
    PaygStrategy,
    PlanSpendStrategy,
)
from budget_kernel.domain.ports import AuditSink, TransactionStore
from budget_kernel.domain.progress import payg_progress, plan_progress
from budget_kernel.exceptions import (
    BudgetNotFoundError,
    ConfigIntegrityError,
    ConflictError,
    DueDateInPastError,
    InvalidAmountError,
    SubcategoryNotFoundError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models.budget import (
    Budget,
    BudgetStatus,
    BudgetType,
    PaygConfig,
    PlanConfig,
    RecurrenceType,
    StartPolicy,
)
from budget_kernel.models.workspace import Subcategory
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.audit_sink import record_safely
from budget_kernel.services.base import BaseService
from budget_kernel.services.funding_ledger import FundingLedger
from budget_kernel.services.transaction_store import SqlTransactionStore

logger = get_logger("services.budget_catalog")

DEFAULT_BUDGET_NAME = "Untitled Budget"


def _positive_amount(field: str, value) -> Decimal:
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAmountError(field, value) from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(field, value)
    return amount


def _enum_value(enum_cls, value, field: str) -> str:
    raw = getattr(value, "value", value)
    try:
        return enum_cls(raw).value
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"{field} must be one of: {allowed}; got {value!r}", field=field
        ) from exc


class BudgetCatalog(BaseService[Budget]):
    """
    Owns Budget rows and their strategy configs.

    Contract:
        All public methods are scoped by workspace_id and return DTOs.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: FundingLedger | None = None,
        transaction_store: TransactionStore | None = None,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_sink = audit_sink
        self._ledger = ledger or FundingLedger(session, self._clock, audit_sink)
        self._transactions = transaction_store or SqlTransactionStore(session, self._clock)
        self._selector = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def strategy_of(self, budget: Budget) -> BudgetStrategy:
        """
        The one strategy selected by budget_type.

        Raises:
            ConfigIntegrityError: neither, both, or the wrong config exists.
        """
        has_payg = budget.payg_config is not None
        has_plan = budget.plan_config is not None
        budget_type = getattr(budget.budget_type, "value", budget.budget_type)

        if budget_type == BudgetType.PAYG.value and has_payg and not has_plan:
            return PaygStrategy.from_model(budget.payg_config)
        if budget_type == BudgetType.PLAN_SPEND.value and has_plan and not has_payg:
            return PlanSpendStrategy.from_model(budget.plan_config)
        raise ConfigIntegrityError(str(budget.id), budget_type, has_payg, has_plan)

    def _to_dto(self, budget: Budget) -> BudgetInfo:
        return BudgetInfo(
            id=budget.id,
            workspace_id=budget.workspace_id,
            subcategory_id=budget.subcategory_id,
            name=budget.name,
            currency=budget.currency,
            budget_type=getattr(budget.budget_type, "value", budget.budget_type),
            status=getattr(budget.status, "value", budget.status),
            created_at=budget.created_at,
            strategy=self.strategy_of(budget),
        )

    def _load(self, workspace_id: UUID, budget_id: UUID) -> Budget:
        budget = self._in_workspace(Budget, budget_id, workspace_id)
        if budget is None:
            raise BudgetNotFoundError(str(budget_id))
        return budget

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        workspace_id: UUID,
        data: CreateBudgetInput,
        actor_id: UUID,
    ) -> BudgetInfo:
        """
        Create a budget and its config.

        With ``auto_fund`` on a plan-and-spend budget, the first monthly
        contribution is recorded too.  Failure of that step does not undo
        the budget.
        """
        now = self._clock.now()

        budget_type = _enum_value(BudgetType, data.budget_type, "budget_type")
        currency = CurrencyRegistry.validate(data.currency)
        amount = _positive_amount("amount", data.amount)

        subcategory = self._in_workspace(Subcategory, data.subcategory_id, workspace_id)
        if subcategory is None:
            raise SubcategoryNotFoundError(str(data.subcategory_id))

        name = (data.name or "").strip() or subcategory.name or DEFAULT_BUDGET_NAME

        plan_fields = None
        if budget_type == BudgetType.PLAN_SPEND.value:
            plan_fields = self._validate_plan(data, now)

        with self.session.begin_nested():
            budget = Budget(
                workspace_id=workspace_id,
                subcategory_id=subcategory.id,
                name=name,
                currency=currency,
                budget_type=budget_type,
                status=BudgetStatus.ACTIVE.value,
                created_by_id=actor_id,
                created_at=now,
                updated_at=now,
            )
            self.session.add(budget)
            self.session.flush()

            config = self._build_config(budget, data, amount, plan_fields)
            if isinstance(config, PaygConfig):
                budget.payg_config = config
            else:
                budget.plan_config = config
            self.session.flush()

        info = self._to_dto(budget)
        logger.info(
            "budget_created",
            extra={"budget_id": str(budget.id), "budget_type": budget_type},
        )
        record_safely(
            self._audit_sink,
            "budget.created",
            {"budget_id": str(budget.id), "budget_type": budget_type},
        )

        if data.auto_fund and isinstance(info.strategy, PlanSpendStrategy):
            self._auto_fund(info, actor_id, now, data.funding_account_id)

        return info

    def _validate_plan(self, data: CreateBudgetInput, now: datetime) -> dict:
        if data.due_date is None or data.due_date == "":
            raise ValidationError(
                "due_date is required for plan_spend budgets", field="due_date"
            )
        due_date = parse_due_date(data.due_date)
        start_policy = _enum_value(StartPolicy, data.start_policy, "start_policy")
        recurrence = _enum_value(
            RecurrenceType, data.recurrence_type or RecurrenceType.NONE, "recurrence_type"
        )
        if total_months(due_date, start_policy, now) < 1:
            raise DueDateInPastError(due_date.isoformat(), start_policy)
        return {
            "due_date": due_date,
            "start_policy": start_policy,
            "recurrence_type": recurrence,
        }

    def _build_config(
        self,
        budget: Budget,
        data: CreateBudgetInput,
        amount: Decimal,
        plan_fields: dict | None,
    ) -> PaygConfig | PlanConfig:
        if plan_fields is None:
            return PaygConfig(
                budget_id=budget.id,
                monthly_cap=amount,
                is_recurring=bool(data.is_recurring),
            )
        return PlanConfig(
            budget_id=budget.id,
            target_amount=amount,
            due_date=plan_fields["due_date"],
            recurrence_type=plan_fields["recurrence_type"],
            start_policy=plan_fields["start_policy"],
            allow_use_safe=bool(data.allow_use_safe),
        )

    def _auto_fund(
        self,
        info: BudgetInfo,
        actor_id: UUID,
        now: datetime,
        funding_account_id: UUID | None,
    ) -> None:
        strategy = info.strategy
        try:
            amount = compute_monthly_contribution(
                strategy.target_amount,
                strategy.due_date,
                strategy.start_policy,
                now,
                CurrencyRegistry.get_decimal_places(info.currency),
            )
            if amount <= 0:
                return
            self._ledger.record_contribution(
                info.workspace_id,
                info.id,
                amount,
                actor_id,
                now=now,
                metadata={
                    "auto_funded": True,
                    "funding_account_id": funding_account_id,
                },
            )
        except Exception:
            # Never fatal: creation stands and the monthly batch retries funding
            logger.warning(
                "auto_fund_failed",
                extra={"budget_id": str(info.id)},
                exc_info=True,
            )

    def preview_contribution(
        self,
        target_amount: Decimal,
        due_date,
        start_policy: str,
        currency: str = "USD",
        now: datetime | None = None,
    ) -> Decimal:
        """Monthly contribution a plan would get if created at ``now``."""
        amount = _positive_amount("target_amount", target_amount)
        policy = _enum_value(StartPolicy, start_policy, "start_policy")
        return compute_monthly_contribution(
            amount,
            parse_due_date(due_date),
            policy,
            now or self._clock.now(),
            CurrencyRegistry.get_decimal_places(CurrencyRegistry.validate(currency)),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, workspace_id: UUID, budget_id: UUID) -> BudgetInfo:
        return self._to_dto(self._load(workspace_id, budget_id))

    def list(self, workspace_id: UUID, now: datetime | None = None) -> list[BudgetListing]:
        """
        Every budget in the workspace with reserved, spending and progress.

        Reserved comes from one ledger pass over the workspace and spending
        from one transaction pass, so cost does not grow with budget count
        times ledger size.
        """
        now = now or self._clock.now()
        budgets = self.session.scalars(
            select(Budget)
            .where(Budget.workspace_id == workspace_id)
            .order_by(Budget.created_at, Budget.name)
        ).all()

        reserved = self._ledger.reserved_by_budget(workspace_id)
        month_start = start_of_month(now)
        spending = self._transactions.spending_by_subcategory(
            workspace_id, month_start, add_months(month_start, 1)
        )
        # A recurring plan is paid only for the cycle its due date points at
        paid_cycles = self._selector.confirmed_payment_dates(workspace_id)

        rows: list[BudgetListing] = []
        for budget in budgets:
            current_reserved = reserved.get(budget.id, Decimal("0"))
            spending_amount = spending.get(budget.subcategory_id, Decimal("0"))
            base = dict(
                id=budget.id,
                workspace_id=budget.workspace_id,
                subcategory_id=budget.subcategory_id,
                name=budget.name,
                currency=budget.currency,
                budget_type=getattr(budget.budget_type, "value", budget.budget_type),
                status=getattr(budget.status, "value", budget.status),
                created_at=budget.created_at,
                current_reserved=current_reserved,
                spending_amount=spending_amount,
            )
            try:
                strategy = self.strategy_of(budget)
            except ConfigIntegrityError as exc:
                logger.error(
                    "budget_config_integrity_error",
                    extra={
                        "budget_id": str(budget.id),
                        "error_code": exc.code,
                    },
                )
                rows.append(BudgetListing(strategy=None, integrity_error=str(exc), **base))
                continue

            if isinstance(strategy, PaygStrategy):
                progress = payg_progress(strategy, spending_amount)
                contribution = None
            else:
                progress = plan_progress(
                    strategy,
                    current_reserved,
                    spending_amount,
                    now.date() if isinstance(now, datetime) else now,
                    has_confirmed_payment=(budget.id, strategy.due_date) in paid_cycles,
                )
                contribution = compute_monthly_contribution(
                    strategy.target_amount,
                    strategy.due_date,
                    strategy.start_policy,
                    now,
                    CurrencyRegistry.get_decimal_places(budget.currency),
                )
            rows.append(
                BudgetListing(
                    strategy=strategy,
                    progress=progress,
                    monthly_contribution=contribution,
                    **base,
                )
            )
        return rows

    # ------------------------------------------------------------------
    # Update / archive / delete
    # ------------------------------------------------------------------

    def update(self, workspace_id: UUID, budget_id: UUID, patch: BudgetPatch) -> None:
        """
        Rename a budget or change its strategy amounts.

        PAYG accepts monthly_cap and is_recurring; PLAN_SPEND accepts
        target_amount.  Anything else for the type is a ValidationError.
        """
        budget = self._load(workspace_id, budget_id)
        strategy = self.strategy_of(budget)

        if isinstance(strategy, PaygStrategy) and patch.target_amount is not None:
            raise ValidationError(
                "target_amount applies to plan_spend budgets only",
                field="target_amount",
            )
        if isinstance(strategy, PlanSpendStrategy) and (
            patch.monthly_cap is not None or patch.is_recurring is not None
        ):
            raise ValidationError(
                "monthly_cap and is_recurring apply to payg budgets only",
                field="monthly_cap" if patch.monthly_cap is not None else "is_recurring",
            )

        if patch.name is not None:
            name = patch.name.strip()
            if not name:
                raise ValidationError("name must not be empty", field="name")
            budget.name = name
        if patch.monthly_cap is not None:
            budget.payg_config.monthly_cap = _positive_amount("monthly_cap", patch.monthly_cap)
        if patch.is_recurring is not None:
            budget.payg_config.is_recurring = bool(patch.is_recurring)
        if patch.target_amount is not None:
            budget.plan_config.target_amount = _positive_amount(
                "target_amount", patch.target_amount
            )

        budget.updated_at = self._clock.now()
        self.session.flush()

        logger.info("budget_updated", extra={"budget_id": str(budget_id)})
        record_safely(self._audit_sink, "budget.updated", {"budget_id": str(budget_id)})

    def archive(self, workspace_id: UUID, budget_id: UUID) -> BudgetInfo:
        """Take a budget out of the monthly batch without deleting its history."""
        budget = self._load(workspace_id, budget_id)
        budget.status = BudgetStatus.ARCHIVED.value
        budget.updated_at = self._clock.now()
        self.session.flush()
        logger.info("budget_archived", extra={"budget_id": str(budget_id)})
        record_safely(self._audit_sink, "budget.archived", {"budget_id": str(budget_id)})
        return self._to_dto(budget)

    def delete(self, workspace_id: UUID, budget_id: UUID) -> None:
        """
        Delete a budget; configs, ledger entries and payments due cascade.

        Raises:
            ConflictError: nothing matched both ids.
        """
        result = self.session.execute(
            delete(Budget).where(
                Budget.id == budget_id,
                Budget.workspace_id == workspace_id,
            )
        )
        if result.rowcount == 0:
            logger.warning(
                "budget_delete_matched_nothing",
                extra={"budget_id": str(budget_id)},
            )
            raise ConflictError("Budget", str(budget_id), "delete")

        logger.info("budget_deleted", extra={"budget_id": str(budget_id)})
        record_safely(self._audit_sink, "budget.deleted", {"budget_id": str(budget_id)})
