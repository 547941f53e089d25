"""Pure domain core: contribution arithmetic, replay, progress, DTOs and ports."""

from budget_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from budget_kernel.domain.contribution import (
    START_NEXT_MONTH,
    START_THIS_MONTH,
    add_months,
    calendar_month_diff,
    compute_monthly_contribution,
    month_key,
    next_due_date,
    parse_due_date,
    start_of_month,
    total_months,
)
from budget_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from budget_kernel.domain.replay import replay_by_budget, replay_reserved

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "START_THIS_MONTH",
    "START_NEXT_MONTH",
    "compute_monthly_contribution",
    "total_months",
    "start_of_month",
    "add_months",
    "calendar_month_diff",
    "month_key",
    "next_due_date",
    "parse_due_date",
    "replay_reserved",
    "replay_by_budget",
]
