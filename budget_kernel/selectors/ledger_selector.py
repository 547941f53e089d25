"""
Module: budget_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the funding ledger and payments due.
    Reserved is a derived view over ledger rows; there is no stored balance
    anywhere, so every query here returns raw (budget_id, entry_type, amount)
    rows for the pure replay in domain/replay.py.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Workspace reads are a single query regardless of budget count.
    - Amounts are summed in Python over Decimal rows, never with SQL SUM, so
      backends without a native decimal type cannot drift.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, or_, select

from budget_kernel.models.ledger import EntryType, LedgerEntry
from budget_kernel.models.payment_due import PaymentDue, PaymentDueStatus
from budget_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Read side of the funding ledger."""

    def entries_for_budget(self, budget_id: UUID) -> list[LedgerEntry]:
        """All entries for one budget in insertion order."""
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.budget_id == budget_id)
            .order_by(LedgerEntry.created_at, LedgerEntry.id)
        )
        return list(self.session.scalars(stmt).all())

    def rows_for_budget(self, budget_id: UUID) -> list[tuple[str, Decimal]]:
        stmt = select(LedgerEntry.entry_type, LedgerEntry.amount).where(
            LedgerEntry.budget_id == budget_id
        )
        return [(row[0], row[1]) for row in self.session.execute(stmt)]

    def rows_for_workspace(
        self, workspace_id: UUID
    ) -> list[tuple[UUID, str, Decimal]]:
        """(budget_id, entry_type, amount) for every entry in the workspace."""
        stmt = select(
            LedgerEntry.budget_id,
            LedgerEntry.entry_type,
            LedgerEntry.amount,
        ).where(LedgerEntry.workspace_id == workspace_id)
        return [(row[0], row[1], row[2]) for row in self.session.execute(stmt)]

    def _funded_in_month_clause(
        self, month: str, month_start: datetime, next_month_start: datetime
    ):
        return (LedgerEntry.entry_type == EntryType.FUND.value) & or_(
            LedgerEntry.funding_month == month,
            (LedgerEntry.created_at >= month_start)
            & (LedgerEntry.created_at < next_month_start),
        )

    def has_fund_in_month(
        self,
        budget_id: UUID,
        month: str,
        month_start: datetime,
        next_month_start: datetime,
    ) -> bool:
        """
        True if any fund entry belongs to the month.

        Automatic contributions are matched by funding_month; manual funds by
        created_at inside [month_start, next_month_start).
        """
        stmt = select(
            exists().where(
                LedgerEntry.budget_id == budget_id,
                self._funded_in_month_clause(month, month_start, next_month_start),
            )
        )
        return bool(self.session.scalar(stmt))

    def funded_budget_ids_in_month(
        self,
        workspace_id: UUID,
        month: str,
        month_start: datetime,
        next_month_start: datetime,
    ) -> set[UUID]:
        stmt = (
            select(LedgerEntry.budget_id)
            .where(
                LedgerEntry.workspace_id == workspace_id,
                self._funded_in_month_clause(month, month_start, next_month_start),
            )
            .distinct()
        )
        return set(self.session.scalars(stmt).all())

    def confirmed_payment_dates(self, workspace_id: UUID) -> set[tuple[UUID, date]]:
        """(budget_id, due_date) of every confirmed payment in the workspace."""
        stmt = select(PaymentDue.budget_id, PaymentDue.due_date).where(
            PaymentDue.workspace_id == workspace_id,
            PaymentDue.status == PaymentDueStatus.CONFIRMED.value,
        )
        return {(row[0], row[1]) for row in self.session.execute(stmt)}

    def pending_payments(self, workspace_id: UUID) -> list[PaymentDue]:
        stmt = (
            select(PaymentDue)
            .where(
                PaymentDue.workspace_id == workspace_id,
                PaymentDue.status == PaymentDueStatus.PENDING.value,
            )
            .order_by(PaymentDue.due_date, PaymentDue.id)
        )
        return list(self.session.scalars(stmt).all())
