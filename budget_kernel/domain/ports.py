"""
Ports -- Interfaces to the collaborators the budget ledger consumes.

Responsibility:
    Names the boundary with everything this package does not own:
    authentication, workspace permissions, exchange rates, the transaction
    store and audit sinks.  Services depend on these protocols, never on a
    concrete implementation.

Architecture position:
    Kernel > Domain -- pure interfaces, zero I/O.
    Default implementations live in services/ (SqlTransactionStore,
    LoggingAuditSink) and budget_services/fx.py (ExchangeRateOracle).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from budget_kernel.domain.dtos import AccountBalance, UserInfo


class AuthProvider(Protocol):
    """Who is making the request."""

    def current_user(self) -> UserInfo | None:
        """Return the authenticated user, or None."""
        ...


class PermissionOracle(Protocol):
    """Gates create/update/delete and the write batches."""

    def can_manage_workspace(self, workspace_id: UUID) -> bool:
        ...


class FxOracle(Protocol):
    """
    Exchange-rate lookup.

    Returns Decimal("1") when the currencies are equal.  Raises
    ExchangeRateNotFoundError (a DependencyError) when no rate is known.
    """

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        ...


class TransactionStore(Protocol):
    """The slice of transaction storage the ledger reads and writes."""

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
        """Record an expense and return its id."""
        ...

    def spending_by_subcategory(
        self,
        workspace_id: UUID,
        start: date,
        end: date,
    ) -> dict[UUID, Decimal]:
        """Sum of expenses per subcategory for start <= date < end."""
        ...

    def account_balances(self, workspace_id: UUID) -> list[AccountBalance]:
        """Balances of all non-archived accounts."""
        ...


class AuditSink(Protocol):
    """Fire-and-forget record of mutating actions."""

    def record(self, action: str, payload: dict[str, Any]) -> None:
        ...
