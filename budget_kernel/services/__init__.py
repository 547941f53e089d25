"""Kernel services: flush-only writers over a caller-owned Session."""

from budget_kernel.services.audit_sink import LoggingAuditSink, record_safely
from budget_kernel.services.budget_catalog import BudgetCatalog
from budget_kernel.services.funding_ledger import FundingLedger
from budget_kernel.services.payment_confirmation import PaymentConfirmation
from budget_kernel.services.transaction_store import SqlTransactionStore

__all__ = [
    "BudgetCatalog",
    "FundingLedger",
    "PaymentConfirmation",
    "SqlTransactionStore",
    "LoggingAuditSink",
    "record_safely",
]
