"""Read-only selectors."""

from budget_kernel.selectors.base import BaseSelector
from budget_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BaseSelector", "LedgerSelector"]
