"""
SqlTransactionStore -- default TransactionStore over the transactions table.

Responsibility:
    Creates the expense written by payment confirmation and answers the two
    read questions the ledger asks of transactions: spending per
    subcategory over a date range, and per-account balances.

Architecture position:
    Kernel > Services.  Implements domain/ports.py:TransactionStore.
    Transaction CRUD beyond this is owned elsewhere.

Failure modes:
    - InvalidAmountError on a non-positive expense amount.
    - TransactionStoreError wrapping any datastore failure on write.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.dtos import AccountBalance
from budget_kernel.exceptions import InvalidAmountError, TransactionStoreError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.transaction import Account, Transaction, TransactionType
from budget_kernel.services.base import BaseService

logger = get_logger("services.transaction_store")


class SqlTransactionStore(BaseService[Transaction]):
    """TransactionStore backed by the ``transactions`` and ``accounts`` tables."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_expense(
        self,
        workspace_id: UUID,
        account_id: UUID,
        subcategory_id: UUID | None,
        amount: Decimal,
        on_date: date,
        actor_id: UUID,
        description: str | None = None,
    ) -> UUID:
        if amount <= 0:
            raise InvalidAmountError("amount", amount)

        now: datetime = self._clock.now()
        txn = Transaction(
            workspace_id=workspace_id,
            account_id=account_id,
            subcategory_id=subcategory_id,
            transaction_type=TransactionType.EXPENSE.value,
            amount=amount,
            description=description,
            date=on_date,
            created_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self.session.add(txn)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise TransactionStoreError(f"could not create expense: {exc}") from exc

        logger.info(
            "expense_transaction_created",
            extra={"transaction_id": str(txn.id), "account_id": str(account_id)},
        )
        return txn.id

    def spending_by_subcategory(
        self,
        workspace_id: UUID,
        start: date,
        end: date,
    ) -> dict[UUID, Decimal]:
        stmt = select(Transaction.subcategory_id, Transaction.amount).where(
            Transaction.workspace_id == workspace_id,
            Transaction.transaction_type == TransactionType.EXPENSE.value,
            Transaction.subcategory_id.is_not(None),
            Transaction.date >= start,
            Transaction.date < end,
        )
        totals: dict[UUID, Decimal] = {}
        for subcategory_id, amount in self.session.execute(stmt):
            totals[subcategory_id] = totals.get(subcategory_id, Decimal("0")) + amount
        return totals

    def account_balances(self, workspace_id: UUID) -> list[AccountBalance]:
        accounts = self.session.scalars(
            select(Account)
            .where(
                Account.workspace_id == workspace_id,
                Account.is_archived.is_(False),
            )
            .order_by(Account.name)
        ).all()
        if not accounts:
            return []

        balances: dict[UUID, Decimal] = {a.id: a.opening_balance for a in accounts}
        stmt = select(
            Transaction.account_id,
            Transaction.transaction_type,
            Transaction.amount,
        ).where(
            Transaction.workspace_id == workspace_id,
            Transaction.account_id.in_(list(balances)),
        )
        for account_id, transaction_type, amount in self.session.execute(stmt):
            if transaction_type == TransactionType.INCOME.value:
                balances[account_id] += amount
            else:
                balances[account_id] -= amount

        return [
            AccountBalance(account_id=a.id, currency=a.currency, balance=balances[a.id])
            for a in accounts
        ]
