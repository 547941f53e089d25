"""
PaymentConfirmation -- settle a plan's due payment.

Responsibility:
    Opens pending payments due for plan-and-spend budgets whose due date has
    arrived, and confirms them: one expense transaction, one matching
    consume entry, and the irreversible pending -> confirmed flip.

Architecture position:
    Kernel > Services -- imperative shell.
    Writes through a TransactionStore and FundingLedger.

Invariants enforced:
    - The three writes of confirm() happen inside one SAVEPOINT.  Any
      failure leaves no transaction, no consume entry and a pending
      PaymentDue.
    - The status flip is a conditional UPDATE (``status = 'pending'``).  A
      concurrent confirmation that got there first turns this one into
      AlreadyConfirmedError and unwinds its writes.
    - Reserved may go negative after a consume (a plan paid before it was
      fully funded).  Nothing clamps it.
    - A recurring plan's due date advances one interval after confirmation.

Failure modes:
    - PaymentDueNotFoundError: unknown id or another workspace's payment.
    - AlreadyConfirmedError: payment already confirmed.
    - AccountNotFoundError: paying account unknown in this workspace.
    - TransactionStoreError / DependencyError from collaborators.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.contribution import next_due_date
from budget_kernel.domain.dtos import ConfirmationResult, PaymentDueInfo
from budget_kernel.domain.ports import AuditSink, TransactionStore
from budget_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyConfirmedError,
    BudgetNotFoundError,
    ConfigIntegrityError,
    PaymentDueNotFoundError,
)
from budget_kernel.logging_config import get_logger
from budget_kernel.models.budget import Budget, BudgetStatus, BudgetType
from budget_kernel.models.payment_due import PaymentDue, PaymentDueStatus
from budget_kernel.models.transaction import Account
from budget_kernel.selectors.ledger_selector import LedgerSelector
from budget_kernel.services.audit_sink import record_safely
from budget_kernel.services.base import BaseService
from budget_kernel.services.funding_ledger import FundingLedger
from budget_kernel.services.transaction_store import SqlTransactionStore

logger = get_logger("services.payment_confirmation")


class PaymentConfirmation(BaseService[PaymentDue]):
    """Turns a pending payment due into a transaction and a consume entry."""

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

    def confirm(
        self,
        workspace_id: UUID,
        payment_due_id: UUID,
        account_id: UUID,
        actor_id: UUID,
    ) -> ConfirmationResult:
        """
        Confirm a pending payment due.

        Steps: create the expense, record the consume entry linked to it,
        flip the payment to confirmed.  All three or none.
        """
        payment = self._in_workspace(PaymentDue, payment_due_id, workspace_id)
        if payment is None:
            raise PaymentDueNotFoundError(str(payment_due_id))
        if payment.is_confirmed:
            raise AlreadyConfirmedError(
                str(payment_due_id),
                str(payment.transaction_id) if payment.transaction_id else None,
            )

        budget = self.session.get(Budget, payment.budget_id)
        if budget is None or budget.workspace_id != workspace_id:
            raise BudgetNotFoundError(str(payment.budget_id))

        if self._in_workspace(Account, account_id, workspace_id) is None:
            raise AccountNotFoundError(str(account_id))

        now = self._clock.now()
        amount = payment.amount_expected
        due_date = payment.due_date
        advanced_to: date | None = None

        with self.session.begin_nested():
            transaction_id = self._transactions.create_expense(
                workspace_id=workspace_id,
                account_id=account_id,
                subcategory_id=budget.subcategory_id,
                amount=amount,
                on_date=now.date(),
                actor_id=actor_id,
                description=f"Payment: {budget.name}",
            )

            entry = self._ledger.record_consume(
                workspace_id,
                budget.id,
                amount,
                actor_id,
                metadata={"payment_due_id": payment_due_id},
                related_transaction_id=transaction_id,
            )

            flipped = self.session.execute(
                update(PaymentDue)
                .where(
                    PaymentDue.id == payment_due_id,
                    PaymentDue.status == PaymentDueStatus.PENDING.value,
                )
                .values(
                    status=PaymentDueStatus.CONFIRMED.value,
                    confirmed_at=now,
                    transaction_id=transaction_id,
                )
                .execution_options(synchronize_session="fetch")
            )
            if flipped.rowcount == 0:
                raise AlreadyConfirmedError(str(payment_due_id), None)

            config = budget.plan_config
            if config is not None:
                following = next_due_date(due_date, config.recurrence_type)
                if following is not None and following > config.due_date:
                    config.due_date = following
                    advanced_to = following
            self.session.flush()

        logger.info(
            "payment_confirmed",
            extra={
                "payment_due_id": str(payment_due_id),
                "budget_id": str(budget.id),
                "transaction_id": str(transaction_id),
                "ledger_entry_id": str(entry.id),
            },
        )
        record_safely(
            self._audit_sink,
            "payment.confirmed",
            {
                "payment_due_id": str(payment_due_id),
                "transaction_id": str(transaction_id),
            },
        )
        return ConfirmationResult(
            payment_due_id=payment_due_id,
            transaction_id=transaction_id,
            ledger_entry_id=entry.id,
            next_due_date=advanced_to,
        )

    def open_due_payments(
        self,
        workspace_id: UUID,
        as_of: date | datetime | None = None,
    ) -> list[PaymentDueInfo]:
        """
        Create a pending payment due for each active plan whose due date has
        arrived and which has none for that date yet.
        """
        as_of = as_of or self._clock.now()
        today = as_of.date() if isinstance(as_of, datetime) else as_of
        now = self._clock.now()

        budgets = self.session.scalars(
            select(Budget)
            .where(
                Budget.workspace_id == workspace_id,
                Budget.budget_type == BudgetType.PLAN_SPEND.value,
                Budget.status == BudgetStatus.ACTIVE.value,
            )
            .order_by(Budget.created_at, Budget.id)
        ).all()

        opened: list[PaymentDueInfo] = []
        for budget in budgets:
            config = budget.plan_config
            if config is None or budget.payg_config is not None:
                logger.error(
                    "budget_config_integrity_error",
                    extra={
                        "budget_id": str(budget.id),
                        "error_code": ConfigIntegrityError.code,
                    },
                )
                continue
            if config.due_date > today:
                continue

            already = self.session.scalar(
                select(PaymentDue.id).where(
                    PaymentDue.budget_id == budget.id,
                    PaymentDue.due_date == config.due_date,
                )
            )
            if already is not None:
                continue

            payment = PaymentDue(
                workspace_id=workspace_id,
                budget_id=budget.id,
                due_date=config.due_date,
                amount_expected=config.target_amount,
                status=PaymentDueStatus.PENDING.value,
                created_at=now,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(payment)
                    self.session.flush()
            except IntegrityError:
                # Opened concurrently for the same (budget, due_date)
                logger.info(
                    "payment_due_already_open",
                    extra={"budget_id": str(budget.id)},
                )
                continue

            logger.info(
                "payment_due_opened",
                extra={"payment_due_id": str(payment.id), "budget_id": str(budget.id)},
            )
            opened.append(PaymentDueInfo.from_model(payment))
        return opened

    def list_pending(self, workspace_id: UUID) -> list[PaymentDueInfo]:
        return [
            PaymentDueInfo.from_model(p)
            for p in self._selector.pending_payments(workspace_id)
        ]
