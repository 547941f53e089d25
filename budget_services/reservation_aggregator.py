"""
ReservationAggregator -- workspace-level money figures.

Responsibility:
    Rolls reserved balances, account balances and upcoming contributions up
    into the workspace's reporting currency: reserved total, available
    cash, money due this month, and pending payments.

Architecture position:
    Services -- composes kernel services (FundingLedger, BudgetCatalog,
    TransactionStore) with an FxOracle.  Read-only.

Invariants enforced:
    - available cash = total balance - reserved.  Never clamped: negative
      available cash means budgets are over-committed and is shown as such.
    - Each currency pair is looked up once per pass (PassRates).
    - A failed rate lookup degrades to 1:1 and marks the figure approximate;
      it never fails the dashboard.
    - Corrupt budgets are left out of due_this_month and logged; they still
      count toward reserved, which is replayed from ledger rows alone.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from budget_kernel.db.types import round_money
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.contribution import compute_monthly_contribution
from budget_kernel.domain.currency import CurrencyRegistry
from budget_kernel.domain.dtos import (
    BudgetProgress,
    ConvertedFigure,
    DashboardFigures,
    PlanSpendStrategy,
)
from budget_kernel.domain.ports import FxOracle, TransactionStore
from budget_kernel.exceptions import ConfigIntegrityError, NotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.budget import Budget, BudgetStatus, BudgetType
from budget_kernel.models.workspace import Workspace
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.budget_catalog import BudgetCatalog
from budget_kernel.services.funding_ledger import FundingLedger, month_bounds
from budget_kernel.services.transaction_store import SqlTransactionStore
from budget_services.fx import ExchangeRateOracle, PassRates

logger = get_logger("services.reservation_aggregator")


class ReservationAggregator:
    """Read-only rollups for one workspace."""

    def __init__(
        self,
        session: Session,
        fx_oracle: FxOracle | None = None,
        clock: Clock | None = None,
        ledger: FundingLedger | None = None,
        transaction_store: TransactionStore | None = None,
        reporting_currency: str | None = None,
        fallback_to_identity: bool = True,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._fx = fx_oracle or ExchangeRateOracle(session, self._clock)
        self._ledger = ledger or FundingLedger(session, self._clock)
        self._transactions = transaction_store or SqlTransactionStore(session, self._clock)
        self._reporting_currency = reporting_currency
        self._fallback = fallback_to_identity
        self._selector = LedgerSelector(session)

    @staticmethod
    def available_cash(total_balance: Decimal, reserved: Decimal) -> Decimal:
        """Balance minus reserved.  May be negative."""
        return total_balance - reserved

    def reporting_currency(self, workspace_id: UUID) -> str:
        if self._reporting_currency:
            return self._reporting_currency
        currency = self.session.scalar(
            select(Workspace.currency).where(Workspace.id == workspace_id)
        )
        if currency is None:
            raise NotFoundError(f"Workspace not found: {workspace_id}")
        return currency

    def _rates(self, workspace_id: UUID) -> PassRates:
        return PassRates(
            self._fx,
            self.reporting_currency(workspace_id),
            fallback_to_identity=self._fallback,
        )

    def _round(self, amount: Decimal, currency: str) -> Decimal:
        return round_money(amount, CurrencyRegistry.get_decimal_places(currency))

    def _reserved_total(self, workspace_id: UUID, rates: PassRates) -> Decimal:
        reserved = self._ledger.reserved_by_budget(workspace_id)
        if not reserved:
            return Decimal("0")
        currencies = dict(
            self.session.execute(
                select(Budget.id, Budget.currency).where(
                    Budget.workspace_id == workspace_id
                )
            ).all()
        )
        total = Decimal("0")
        for budget_id, amount in reserved.items():
            currency = currencies.get(budget_id, rates.target_currency)
            total += rates.convert(amount, currency)
        return total

    def workspace_reserved(self, workspace_id: UUID) -> ConvertedFigure:
        """Σ reserved across budgets, in the reporting currency."""
        rates = self._rates(workspace_id)
        total = self._reserved_total(workspace_id, rates)
        return ConvertedFigure(
            amount=self._round(total, rates.target_currency),
            currency=rates.target_currency,
            is_approximate=rates.is_approximate,
            approximate_currencies=rates.approximate_currencies,
        )

    def _total_balance(self, workspace_id: UUID, rates: PassRates) -> Decimal:
        total = Decimal("0")
        for balance in self._transactions.account_balances(workspace_id):
            total += rates.convert(balance.balance, balance.currency)
        return total

    def _due_this_month(
        self, workspace_id: UUID, now: datetime, rates: PassRates
    ) -> Decimal:
        month, first, following = month_bounds(now)
        funded = self._selector.funded_budget_ids_in_month(
            workspace_id, month, first, following
        )
        budgets = self.session.scalars(
            select(Budget).where(
                Budget.workspace_id == workspace_id,
                Budget.budget_type == BudgetType.PLAN_SPEND.value,
                Budget.status == BudgetStatus.ACTIVE.value,
            )
        ).all()

        catalog = BudgetCatalog(
            self.session,
            self._clock,
            ledger=self._ledger,
            transaction_store=self._transactions,
        )
        total = Decimal("0")
        for budget in budgets:
            if budget.id in funded:
                continue
            try:
                strategy = catalog.strategy_of(budget)
            except ConfigIntegrityError as exc:
                logger.error(
                    "budget_config_integrity_error",
                    extra={"budget_id": str(budget.id), "error_code": exc.code},
                )
                continue
            if not isinstance(strategy, PlanSpendStrategy):
                continue
            amount = compute_monthly_contribution(
                strategy.target_amount,
                strategy.due_date,
                strategy.start_policy,
                now,
                CurrencyRegistry.get_decimal_places(budget.currency),
            )
            if amount > 0:
                total += rates.convert(amount, budget.currency)
        return total

    def dashboard(self, workspace_id: UUID, now: datetime | None = None) -> DashboardFigures:
        """All workspace figures from one pass with one rate cache."""
        now = now or self._clock.now()
        rates = self._rates(workspace_id)
        currency = rates.target_currency

        total_balance = self._round(self._total_balance(workspace_id, rates), currency)
        reserved_total = self._round(self._reserved_total(workspace_id, rates), currency)
        due_this_month = self._round(self._due_this_month(workspace_id, now, rates), currency)
        today = now.date()
        pending = [
            p for p in self._selector.pending_payments(workspace_id) if p.due_date <= today
        ]

        figures = DashboardFigures(
            currency=currency,
            total_balance=total_balance,
            reserved_total=reserved_total,
            available_cash=self.available_cash(total_balance, reserved_total),
            due_this_month=due_this_month,
            pending_payments_count=len(pending),
            is_approximate=rates.is_approximate,
            approximate_currencies=rates.approximate_currencies,
        )
        logger.info(
            "dashboard_computed",
            extra={
                "workspace_id": str(workspace_id),
                "is_approximate": figures.is_approximate,
                "pending_payments_count": figures.pending_payments_count,
            },
        )
        return figures

    def budget_progress(
        self, workspace_id: UUID, now: datetime | None = None
    ) -> dict[UUID, BudgetProgress | None]:
        """Progress per budget; None for a corrupt budget."""
        catalog = BudgetCatalog(
            self.session,
            self._clock,
            ledger=self._ledger,
            transaction_store=self._transactions,
        )
        return {row.id: row.progress for row in catalog.list(workspace_id, now)}
