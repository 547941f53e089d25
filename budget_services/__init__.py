"""
budget_services -- request-level orchestration over budget_kernel.

Exposes BudgetActions (the uniform ActionResult surface), the workspace
ReservationAggregator and the default FX oracle.
"""

from budget_services.actions import ActionResult, BudgetActions, SafeError
from budget_services.fx import ExchangeRateOracle, PassRates
from budget_services.reservation_aggregator import ReservationAggregator

__all__ = [
    "ActionResult",
    "BudgetActions",
    "SafeError",
    "ExchangeRateOracle",
    "PassRates",
    "ReservationAggregator",
]
