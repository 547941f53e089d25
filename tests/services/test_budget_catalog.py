"""
BudgetCatalog: creation, config exclusivity, listing and scoped deletes.

Verifies:
- Budget and config are written together or not at all
- Exactly one config per budget; anything else is a degraded row, never 0
- Due dates with no fundable month are rejected at creation
- Auto-fund failure never undoes a created budget
- Deletes are scoped to the workspace and report zero rows as a conflict
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import delete, func, select

from budget_kernel.domain.dtos import BudgetPatch, PaygStrategy, PlanSpendStrategy, ProgressState
from budget_kernel.exceptions import (
    BudgetNotFoundError,
    ConfigIntegrityError,
    ConflictError,
    DueDateInPastError,
    ImmutabilityViolationError,
    InvalidAmountError,
    InvalidCurrencyError,
    SubcategoryNotFoundError,
    ValidationError,
)
from budget_kernel.models.budget import Budget, PaygConfig, PlanConfig
from budget_kernel.models.ledger import LedgerEntry
from budget_kernel.models.transaction import Transaction
from budget_kernel.services.budget_catalog import BudgetCatalog, DEFAULT_BUDGET_NAME
from budget_kernel.services.funding_ledger import FundingLedger


def _budget_count(session, workspace_id) -> int:
    return session.scalar(
        select(func.count()).select_from(Budget).where(Budget.workspace_id == workspace_id)
    )


def _expense(session, workspace, account, subcategory, amount, on, actor_id):
    now = datetime(on.year, on.month, on.day, tzinfo=timezone.utc)
    txn = Transaction(
        workspace_id=workspace.id,
        account_id=account.id,
        subcategory_id=subcategory.id,
        transaction_type="expense",
        amount=Decimal(amount),
        date=on,
        created_by_id=actor_id,
        created_at=now,
        updated_at=now,
    )
    session.add(txn)
    session.flush()
    return txn


class TestCreate:
    def test_plan_budget_gets_only_plan_config(self, session, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)

        assert isinstance(info.strategy, PlanSpendStrategy)
        assert info.strategy.target_amount == Decimal("1200")
        assert info.strategy.due_date == date(2025, 12, 1)
        assert session.scalar(select(PaygConfig).where(PaygConfig.budget_id == info.id)) is None
        assert session.scalar(select(PlanConfig).where(PlanConfig.budget_id == info.id)) is not None

    def test_payg_budget_gets_only_payg_config(self, session, catalog, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(is_recurring=False), test_actor_id)

        assert isinstance(info.strategy, PaygStrategy)
        assert info.strategy.monthly_cap == Decimal("400")
        assert info.strategy.is_recurring is False
        assert session.scalar(select(PlanConfig).where(PlanConfig.budget_id == info.id)) is None

    def test_name_defaults_to_subcategory_name(self, catalog, workspace, plan_input, subcategory, test_actor_id):
        info = catalog.create(workspace.id, plan_input(name="  "), test_actor_id)
        assert info.name == subcategory.name

    def test_explicit_name_is_trimmed(self, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(name="  Car insurance 2025 "), test_actor_id)
        assert info.name == "Car insurance 2025"

    def test_default_name_constant_is_not_empty(self):
        assert DEFAULT_BUDGET_NAME.strip()

    def test_month_only_due_date_is_accepted(self, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(due_date="2025-06"), test_actor_id)
        assert info.strategy.due_date == date(2025, 6, 1)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), "abc", Decimal("NaN")])
    def test_non_positive_or_bad_amount_rejected(self, catalog, workspace, plan_input, test_actor_id, amount):
        with pytest.raises(InvalidAmountError):
            catalog.create(workspace.id, plan_input(amount=amount), test_actor_id)

    def test_unknown_budget_type_rejected(self, catalog, workspace, plan_input, test_actor_id):
        with pytest.raises(ValidationError):
            catalog.create(workspace.id, plan_input(budget_type="envelope"), test_actor_id)

    def test_bad_currency_rejected(self, catalog, workspace, plan_input, test_actor_id):
        with pytest.raises(InvalidCurrencyError):
            catalog.create(workspace.id, plan_input(currency="XXQ"), test_actor_id)

    def test_plan_requires_due_date(self, catalog, workspace, plan_input, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            catalog.create(workspace.id, plan_input(due_date=None), test_actor_id)
        assert exc_info.value.field == "due_date"

    def test_passed_due_date_rejected(self, session, catalog, workspace, plan_input, test_actor_id):
        """A due date with zero fundable months is a validation error, not a 0 plan."""
        with pytest.raises(DueDateInPastError):
            catalog.create(workspace.id, plan_input(due_date=date(2024, 12, 1)), test_actor_id)
        assert _budget_count(session, workspace.id) == 0

    def test_due_this_month_with_next_month_policy_rejected(self, catalog, workspace, plan_input, test_actor_id):
        with pytest.raises(DueDateInPastError):
            catalog.create(
                workspace.id,
                plan_input(due_date=date(2025, 1, 31), start_policy="start_next_month"),
                test_actor_id,
            )

    def test_subcategory_from_another_workspace_rejected(
        self, catalog, other_workspace, plan_input, test_actor_id
    ):
        with pytest.raises(SubcategoryNotFoundError):
            catalog.create(other_workspace.id, plan_input(), test_actor_id)

    def test_config_failure_leaves_no_budget(
        self, session, catalog, workspace, plan_input, test_actor_id, monkeypatch
    ):
        """The budget row is rolled back and the original error surfaces."""

        def boom(*args, **kwargs):
            raise RuntimeError("config store down")

        monkeypatch.setattr(catalog, "_build_config", boom)

        with pytest.raises(RuntimeError, match="config store down"):
            catalog.create(workspace.id, plan_input(), test_actor_id)

        assert _budget_count(session, workspace.id) == 0

    def test_create_logs_event(self, catalog, workspace, plan_input, test_actor_id, captured_logs):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)
        records = [r for r in captured_logs() if r["message"] == "budget_created"]
        assert records and records[0]["budget_id"] == str(info.id)


class TestAutoFund:
    def test_auto_fund_records_first_contribution(self, catalog, ledger, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)

        entries = ledger.entries(info.id)
        assert len(entries) == 1
        assert entries[0].entry_type == "fund"
        assert entries[0].amount == Decimal("100")
        assert entries[0].funding_month == "2025-01"
        assert entries[0].metadata["auto_funded"] is True

    def test_auto_fund_ignored_for_payg(self, catalog, ledger, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(auto_fund=True), test_actor_id)
        assert ledger.entries(info.id) == []

    def test_auto_fund_failure_keeps_budget(
        self, session, catalog, ledger, workspace, plan_input, test_actor_id, monkeypatch, captured_logs
    ):
        """Funding failure is logged and swallowed; creation still succeeds."""

        def failing_contribution(*args, **kwargs):
            raise ConflictError("LedgerEntry", "x", "insert")

        monkeypatch.setattr(ledger, "record_contribution", failing_contribution)

        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)

        assert session.get(Budget, info.id) is not None
        assert ledger.entries(info.id) == []
        assert any(r["message"] == "auto_fund_failed" for r in captured_logs())

    def test_auto_fund_unexpected_error_keeps_budget(
        self, session, catalog, ledger, workspace, plan_input, test_actor_id, monkeypatch, captured_logs
    ):
        def unreachable_ledger(*args, **kwargs):
            raise ConnectionError("ledger host unreachable")

        monkeypatch.setattr(ledger, "record_contribution", unreachable_ledger)

        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)

        assert session.get(Budget, info.id) is not None
        failures = [r for r in captured_logs() if r["message"] == "auto_fund_failed"]
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_auto_fund_then_monthly_apply_does_not_double_fund(
        self, catalog, ledger, workspace, plan_input, test_actor_id
    ):
        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)
        result = ledger.apply_monthly_contributions(workspace.id, test_actor_id)

        assert info.id in result.skipped
        assert ledger.current_reserved(info.id) == Decimal("100")


class TestPreview:
    def test_preview_matches_auto_fund_amount(self, catalog):
        amount = catalog.preview_contribution(Decimal("1200"), "2025-12", "start_this_month")
        assert amount == Decimal("100.00")

    def test_preview_uses_currency_minor_unit(self, catalog):
        amount = catalog.preview_contribution(Decimal("1000"), "2025-03", "start_this_month", "JPY")
        assert amount == Decimal("333")

    def test_preview_of_passed_date_is_zero(self, catalog):
        assert catalog.preview_contribution(Decimal("1000"), "2024-03", "start_this_month") == 0


class TestList:
    def test_list_reports_reserved_spending_and_progress(
        self, session, catalog, ledger, workspace, plan_input, payg_input,
        account, subcategory, groceries, test_actor_id,
    ):
        plan = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)
        payg = catalog.create(workspace.id, payg_input(), test_actor_id)
        _expense(session, workspace, account, groceries, "500", date(2025, 1, 10), test_actor_id)
        # Last month's spending is outside the window
        _expense(session, workspace, account, groceries, "99", date(2024, 12, 31), test_actor_id)

        rows = {row.id: row for row in catalog.list(workspace.id)}

        plan_row = rows[plan.id]
        assert plan_row.current_reserved == Decimal("100")
        assert plan_row.monthly_contribution == Decimal("100.00")
        assert plan_row.progress.state == ProgressState.ON_TRACK
        assert not plan_row.is_degraded

        payg_row = rows[payg.id]
        assert payg_row.spending_amount == Decimal("500")
        assert payg_row.progress.state == ProgressState.OVER_BUDGET
        assert payg_row.progress.ratio == Decimal("1.25")
        assert payg_row.progress.display_ratio == Decimal("1")

    def test_missing_config_degrades_row(self, session, catalog, workspace, plan_input, payg_input, test_actor_id):
        """A corrupt budget is listed with an integrity error, not as a 0 plan."""
        broken = catalog.create(workspace.id, plan_input(), test_actor_id)
        healthy = catalog.create(workspace.id, payg_input(), test_actor_id)
        session.execute(delete(PlanConfig).where(PlanConfig.budget_id == broken.id))
        session.expire_all()

        rows = {row.id: row for row in catalog.list(workspace.id)}

        assert rows[broken.id].is_degraded
        assert rows[broken.id].strategy is None
        assert rows[broken.id].progress is None
        assert rows[broken.id].monthly_contribution is None
        assert not rows[healthy.id].is_degraded

    def test_both_configs_is_integrity_error(self, session, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)
        session.add(PaygConfig(budget_id=info.id, monthly_cap=Decimal("10"), is_recurring=True))
        session.flush()
        session.expire_all()

        with pytest.raises(ConfigIntegrityError) as exc_info:
            catalog.get(workspace.id, info.id)
        assert exc_info.value.has_payg_config and exc_info.value.has_plan_config

    def test_list_is_workspace_scoped(self, catalog, workspace, other_workspace, plan_input, test_actor_id):
        catalog.create(workspace.id, plan_input(), test_actor_id)
        assert catalog.list(other_workspace.id) == []


class TestUpdate:
    def test_rename_and_change_cap(self, catalog, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(), test_actor_id)
        catalog.update(
            workspace.id, info.id, BudgetPatch(name="Food", monthly_cap=Decimal("450"), is_recurring=False)
        )
        updated = catalog.get(workspace.id, info.id)
        assert updated.name == "Food"
        assert updated.strategy.monthly_cap == Decimal("450")
        assert updated.strategy.is_recurring is False

    def test_change_target_amount(self, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)
        catalog.update(workspace.id, info.id, BudgetPatch(target_amount=Decimal("2400")))
        assert catalog.get(workspace.id, info.id).strategy.target_amount == Decimal("2400")

    def test_plan_fields_rejected_for_payg(self, catalog, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(), test_actor_id)
        with pytest.raises(ValidationError):
            catalog.update(workspace.id, info.id, BudgetPatch(target_amount=Decimal("1")))

    def test_payg_fields_rejected_for_plan(self, catalog, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)
        with pytest.raises(ValidationError):
            catalog.update(workspace.id, info.id, BudgetPatch(monthly_cap=Decimal("1")))

    def test_non_positive_cap_rejected(self, catalog, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(), test_actor_id)
        with pytest.raises(InvalidAmountError):
            catalog.update(workspace.id, info.id, BudgetPatch(monthly_cap=Decimal("0")))

    def test_update_in_other_workspace_is_not_found(
        self, catalog, workspace, other_workspace, payg_input, test_actor_id
    ):
        info = catalog.create(workspace.id, payg_input(), test_actor_id)
        with pytest.raises(BudgetNotFoundError):
            catalog.update(other_workspace.id, info.id, BudgetPatch(name="Hijacked"))

    def test_budget_type_is_immutable(self, session, catalog, workspace, payg_input, test_actor_id):
        info = catalog.create(workspace.id, payg_input(), test_actor_id)
        budget = session.get(Budget, info.id)
        budget.budget_type = "plan_spend"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestArchiveAndDelete:
    def test_archived_budget_skipped_by_monthly_apply(self, catalog, ledger, workspace, plan_input, test_actor_id):
        info = catalog.create(workspace.id, plan_input(), test_actor_id)
        archived = catalog.archive(workspace.id, info.id)
        assert archived.status == "archived"

        result = ledger.apply_monthly_contributions(workspace.id, test_actor_id)
        assert result.funded == ()
        assert info.id not in result.skipped

    def test_delete_cascades_configs_and_entries(
        self, session, catalog, workspace, plan_input, test_actor_id
    ):
        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)
        catalog.delete(workspace.id, info.id)
        session.expire_all()

        assert session.get(Budget, info.id) is None
        assert session.scalar(select(PlanConfig).where(PlanConfig.budget_id == info.id)) is None
        assert session.scalar(select(LedgerEntry).where(LedgerEntry.budget_id == info.id)) is None

    def test_delete_from_other_workspace_is_conflict(
        self, session, catalog, workspace, other_workspace, plan_input, test_actor_id
    ):
        """Zero rows matched: reported, and the budget is untouched."""
        info = catalog.create(workspace.id, plan_input(), test_actor_id)

        with pytest.raises(ConflictError):
            catalog.delete(other_workspace.id, info.id)

        assert session.get(Budget, info.id) is not None

    def test_delete_unknown_id_is_conflict(self, catalog, workspace):
        with pytest.raises(ConflictError):
            catalog.delete(workspace.id, uuid4())

    def test_catalog_without_injected_collaborators(self, session, deterministic_clock, workspace, plan_input, test_actor_id):
        catalog = BudgetCatalog(session, deterministic_clock)
        info = catalog.create(workspace.id, plan_input(auto_fund=True), test_actor_id)
        assert FundingLedger(session).current_reserved(info.id) == Decimal("100")
