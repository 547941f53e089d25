"""
Progress -- Per-budget progress toward a cap or a target.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - The raw ratio is never capped.  Over budget and over funded are real
      states; only display_ratio is clamped to [0, 1].
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from budget_kernel.db.types import round_money
from budget_kernel.domain.dtos import (
    BudgetProgress,
    PaygStrategy,
    PlanSpendStrategy,
    ProgressState,
)

RATIO_DECIMAL_PLACES = 4

_ZERO = Decimal("0")
_ONE = Decimal("1")


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return _ZERO
    return round_money(numerator / denominator, RATIO_DECIMAL_PLACES)


def _display(ratio: Decimal) -> Decimal:
    return min(max(ratio, _ZERO), _ONE)


def payg_progress(strategy: PaygStrategy, spending_amount: Decimal) -> BudgetProgress:
    """Spending against the monthly cap."""
    ratio = _ratio(spending_amount, strategy.monthly_cap)
    state = ProgressState.OVER_BUDGET if ratio > _ONE else ProgressState.ON_TRACK
    return BudgetProgress(ratio=ratio, display_ratio=_display(ratio), state=state)


def plan_progress(
    strategy: PlanSpendStrategy,
    current_reserved: Decimal,
    spending_amount: Decimal,
    today: date,
    has_confirmed_payment: bool = False,
) -> BudgetProgress:
    """
    Reserved against the target.

    A plan is ``paid`` once the payment due for its current due date was
    confirmed and there is spending on or after that date.
    """
    ratio = _ratio(current_reserved, strategy.target_amount)
    if has_confirmed_payment and spending_amount > 0 and today >= strategy.due_date:
        state = ProgressState.PAID
    elif spending_amount > strategy.target_amount:
        state = ProgressState.OVER_BUDGET
    elif ratio >= _ONE:
        state = ProgressState.FUNDED
    else:
        state = ProgressState.ON_TRACK
    return BudgetProgress(ratio=ratio, display_ratio=_display(ratio), state=state)
