"""ORM models for the budget ledger."""

from budget_kernel.models.budget import (
    Budget,
    BudgetStatus,
    BudgetType,
    PaygConfig,
    PlanConfig,
    RecurrenceType,
    StartPolicy,
)
from budget_kernel.models.exchange_rate import ExchangeRate
from budget_kernel.models.ledger import EntryType, LedgerEntry
from budget_kernel.models.payment_due import PaymentDue, PaymentDueStatus
from budget_kernel.models.transaction import Account, Transaction, TransactionType
from budget_kernel.models.workspace import Subcategory, Workspace

__all__ = [
    "Workspace",
    "Subcategory",
    "Account",
    "Transaction",
    "TransactionType",
    "Budget",
    "BudgetType",
    "BudgetStatus",
    "RecurrenceType",
    "StartPolicy",
    "PaygConfig",
    "PlanConfig",
    "LedgerEntry",
    "EntryType",
    "PaymentDue",
    "PaymentDueStatus",
    "ExchangeRate",
]
