"""
PaymentConfirmation: opening due payments and settling them.

Verifies:
- Confirm writes one expense, one matching consume entry and the status flip
- The three writes are all-or-nothing
- pending -> confirmed happens exactly once
- Recurring plans move to their next due date after confirmation, and a
  new cycle reads as paid only once its own payment is confirmed
- End to end: a 600 plan funded once then paid in full leaves -500 reserved
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update

from budget_kernel.domain.dtos import ProgressState
from budget_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyConfirmedError,
    ImmutabilityViolationError,
    PaymentDueNotFoundError,
    TransactionStoreError,
)
from budget_kernel.models.budget import PlanConfig
from budget_kernel.models.ledger import LedgerEntry
from budget_kernel.models.payment_due import PaymentDue
from budget_kernel.models.transaction import Transaction
from budget_kernel.services.payment_confirmation import PaymentConfirmation

DUE = date(2025, 6, 1)


def _count(session, model, **filters) -> int:
    stmt = select(func.count()).select_from(model)
    for name, value in filters.items():
        stmt = stmt.where(getattr(model, name) == value)
    return session.scalar(stmt)


@pytest.fixture
def plan_600(catalog, workspace, plan_input, test_actor_id):
    """600 due in June: six fundable months from mid-January."""
    return catalog.create(
        workspace.id,
        plan_input(amount=Decimal("600"), due_date=DUE, auto_fund=True),
        test_actor_id,
    )


@pytest.fixture
def due_payment(payments, workspace, plan_600):
    opened = payments.open_due_payments(workspace.id, as_of=DUE)
    assert len(opened) == 1
    return opened[0]


class TestOpenDuePayments:
    def test_nothing_opened_before_due_date(self, payments, workspace, plan_600):
        assert payments.open_due_payments(workspace.id, as_of=date(2025, 5, 31)) == []

    def test_opens_pending_payment_for_target(self, payments, workspace, plan_600):
        opened = payments.open_due_payments(workspace.id, as_of=DUE)

        assert len(opened) == 1
        assert opened[0].budget_id == plan_600.id
        assert opened[0].amount_expected == Decimal("600")
        assert opened[0].due_date == DUE
        assert opened[0].status == "pending"

    def test_opening_twice_is_a_no_op(self, session, payments, workspace, plan_600):
        payments.open_due_payments(workspace.id, as_of=DUE)
        assert payments.open_due_payments(workspace.id, as_of=DUE) == []
        assert _count(session, PaymentDue, budget_id=plan_600.id) == 1

    def test_payg_budgets_never_get_payments(self, catalog, payments, workspace, payg_input, test_actor_id):
        catalog.create(workspace.id, payg_input(), test_actor_id)
        assert payments.open_due_payments(workspace.id, as_of=date(2030, 1, 1)) == []

    def test_list_pending(self, payments, workspace, due_payment):
        assert [p.id for p in payments.list_pending(workspace.id)] == [due_payment.id]


class TestConfirm:
    def test_end_to_end_600_plan(
        self, session, catalog, ledger, payments, workspace, account, plan_600, due_payment,
        test_actor_id, deterministic_clock,
    ):
        """Funded 100 once, paid 600: reserved is -500 and the plan reads as paid."""
        assert ledger.current_reserved(plan_600.id) == Decimal("100")

        deterministic_clock.set_time(datetime(2025, 6, 2, 9, tzinfo=timezone.utc))
        result = payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        assert ledger.current_reserved(plan_600.id) == Decimal("-500")

        txn = session.get(Transaction, result.transaction_id)
        assert txn.amount == Decimal("600")
        assert txn.subcategory_id == plan_600.subcategory_id
        assert txn.account_id == account.id
        assert txn.date == date(2025, 6, 2)

        consume = session.get(LedgerEntry, result.ledger_entry_id)
        assert consume.entry_type == "consume"
        assert consume.amount == Decimal("600")
        assert consume.related_transaction_id == result.transaction_id

        payment = session.get(PaymentDue, due_payment.id)
        session.refresh(payment)
        assert payment.status == "confirmed"
        assert payment.transaction_id == result.transaction_id
        assert payment.confirmed_at is not None

        row = next(r for r in catalog.list(workspace.id) if r.id == plan_600.id)
        assert row.current_reserved == Decimal("-500")
        assert row.progress.state == ProgressState.PAID

    def test_second_confirm_rejected(self, session, payments, workspace, account, due_payment, test_actor_id):
        first = payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        with pytest.raises(AlreadyConfirmedError) as exc_info:
            payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        assert exc_info.value.transaction_id == str(first.transaction_id)
        assert _count(session, Transaction, account_id=account.id) == 1

    def test_confirmed_payment_is_immutable(self, session, payments, workspace, account, due_payment, test_actor_id):
        payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)
        payment = session.get(PaymentDue, due_payment.id)
        session.refresh(payment)
        payment.amount_expected = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_lost_race_unwinds_all_writes(
        self, session, payments, workspace, account, plan_600, due_payment, ledger, test_actor_id
    ):
        """Another request flipped the row first: no expense, no consume entry."""
        session.get(PaymentDue, due_payment.id)
        session.execute(
            update(PaymentDue)
            .where(PaymentDue.id == due_payment.id)
            .values(status="confirmed")
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(AlreadyConfirmedError):
            payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        assert _count(session, Transaction, account_id=account.id) == 0
        assert _count(session, LedgerEntry, budget_id=plan_600.id, entry_type="consume") == 0
        assert ledger.current_reserved(plan_600.id) == Decimal("100")

    def test_ledger_failure_unwinds_expense(
        self, session, payments, ledger, workspace, account, due_payment, test_actor_id, monkeypatch
    ):
        def failing_consume(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(ledger, "record_consume", failing_consume)

        with pytest.raises(RuntimeError):
            payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        assert _count(session, Transaction, account_id=account.id) == 0
        payment = session.get(PaymentDue, due_payment.id)
        session.refresh(payment)
        assert payment.status == "pending"

    def test_transaction_store_failure_leaves_payment_pending(
        self, session, deterministic_clock, ledger, workspace, account, plan_600, due_payment, test_actor_id
    ):
        class DownStore:
            def create_expense(self, **kwargs):
                raise TransactionStoreError("store offline")

        payments = PaymentConfirmation(
            session, deterministic_clock, ledger=ledger, transaction_store=DownStore()
        )

        with pytest.raises(TransactionStoreError):
            payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)

        assert _count(session, LedgerEntry, budget_id=plan_600.id, entry_type="consume") == 0
        assert payments.list_pending(workspace.id)[0].id == due_payment.id

    def test_unknown_payment(self, payments, workspace, account, test_actor_id):
        with pytest.raises(PaymentDueNotFoundError):
            payments.confirm(workspace.id, uuid4(), account.id, test_actor_id)

    def test_payment_from_other_workspace(self, payments, other_workspace, account, due_payment, test_actor_id):
        with pytest.raises(PaymentDueNotFoundError):
            payments.confirm(other_workspace.id, due_payment.id, account.id, test_actor_id)

    def test_unknown_account(self, payments, workspace, due_payment, test_actor_id):
        with pytest.raises(AccountNotFoundError):
            payments.confirm(workspace.id, due_payment.id, uuid4(), test_actor_id)


class TestRecurringPlans:
    def test_monthly_plan_advances_due_date(
        self, session, catalog, payments, workspace, account, plan_input, test_actor_id
    ):
        info = catalog.create(
            workspace.id,
            plan_input(amount=Decimal("50"), due_date=date(2025, 1, 20), recurrence_type="monthly"),
            test_actor_id,
        )
        opened = payments.open_due_payments(workspace.id, as_of=date(2025, 1, 20))

        result = payments.confirm(workspace.id, opened[0].id, account.id, test_actor_id)

        assert result.next_due_date == date(2025, 2, 20)
        config = session.scalar(select(PlanConfig).where(PlanConfig.budget_id == info.id))
        assert config.due_date == date(2025, 2, 20)
        # The next cycle opens its own payment when that date arrives
        assert payments.open_due_payments(workspace.id, as_of=date(2025, 2, 20))[0].due_date == date(2025, 2, 20)

    def test_one_off_plan_keeps_due_date(self, payments, workspace, account, due_payment, test_actor_id):
        result = payments.confirm(workspace.id, due_payment.id, account.id, test_actor_id)
        assert result.next_due_date is None

    def test_next_cycle_not_paid_until_its_own_payment_confirmed(
        self, catalog, payments, transaction_store, workspace, account, plan_input, test_actor_id,
        deterministic_clock,
    ):
        info = catalog.create(
            workspace.id,
            plan_input(amount=Decimal("50"), due_date=date(2025, 1, 20), recurrence_type="monthly"),
            test_actor_id,
        )
        january = payments.open_due_payments(workspace.id, as_of=date(2025, 1, 20))[0]
        payments.confirm(workspace.id, january.id, account.id, test_actor_id)

        deterministic_clock.set_time(datetime(2025, 2, 21, 9, tzinfo=timezone.utc))
        february = payments.open_due_payments(workspace.id)[0]
        transaction_store.create_expense(
            workspace_id=workspace.id,
            account_id=account.id,
            subcategory_id=info.subcategory_id,
            amount=Decimal("5.00"),
            on_date=date(2025, 2, 21),
            actor_id=test_actor_id,
        )

        row = next(r for r in catalog.list(workspace.id) if r.id == info.id)

        assert february.due_date == date(2025, 2, 20)
        assert february.status == "pending"
        assert row.progress.state != ProgressState.PAID
