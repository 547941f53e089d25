"""
Contribution -- Monthly contribution arithmetic for plan-and-spend budgets.

Responsibility:
    Computes how much a plan-and-spend budget must set aside each month to
    reach its target amount by its due date, plus the calendar helpers the
    rest of the ledger uses to reason about months.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    The same function serves the creation-time preview, the auto-fund at
    creation, and the monthly apply batch, so a budget's schedule is
    reproducible given the same ``now``.

Invariants enforced:
    - Months are calendar months.  A plan due anywhere in December, started
      anywhere in January of the same year, has 12 fundable months.
    - Contributions are rounded half-up to the currency's minor unit.
    - A due date at or before the effective start month minus one yields 0,
      never a negative amount.

Failure modes:
    - ValidationError from parse_due_date() on a malformed date string.
    - TypeError when a float amount is passed.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from decimal import Decimal

from budget_kernel.db.types import round_money, to_money
from budget_kernel.exceptions import ValidationError

START_THIS_MONTH = "start_this_month"
START_NEXT_MONTH = "start_next_month"

_RECURRENCE_MONTHS: dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}

_MONTH_ONLY = re.compile(r"^\d{4}-\d{2}$")
_FULL_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_month(value: date | datetime) -> date:
    """First day of the calendar month containing ``value``."""
    d = _as_date(value)
    return d.replace(day=1)


def add_months(value: date, months: int) -> date:
    """
    Shift a date by whole calendar months.

    The day is clamped to the last day of the target month, so
    2025-01-31 + 1 month is 2025-02-28.
    """
    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def calendar_month_diff(later: date, earlier: date) -> int:
    """Number of calendar month boundaries between two dates (may be negative)."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def month_key(value: date | datetime) -> str:
    """``YYYY-MM`` key of the month containing ``value``."""
    d = _as_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def effective_start(start_policy: str, now: date | datetime) -> date:
    """First month that counts toward the schedule under ``start_policy``."""
    start = start_of_month(now)
    if start_policy == START_NEXT_MONTH:
        start = add_months(start, 1)
    return start


def total_months(due_date: date, start_policy: str, now: date | datetime) -> int:
    """
    Fundable months from the effective start through the due month, inclusive.

    Zero or negative means the due date has already passed.
    """
    start = effective_start(start_policy, now)
    due = start_of_month(due_date)
    return calendar_month_diff(due, start) + 1


def compute_monthly_contribution(
    target_amount: Decimal,
    due_date: date,
    start_policy: str,
    now: date | datetime,
    decimal_places: int = 2,
) -> Decimal:
    """
    Monthly amount needed to reach ``target_amount`` by ``due_date``.

    Returns Decimal("0") when no fundable months remain.  Creation-time
    callers turn that into a ValidationError instead.

    >>> compute_monthly_contribution(Decimal("1200"), date(2025, 12, 1),
    ...     START_THIS_MONTH, date(2025, 1, 15))
    Decimal('100.00')
    """
    months = total_months(due_date, start_policy, now)
    if months <= 0:
        return Decimal("0")
    return round_money(to_money(target_amount) / months, decimal_places)


def next_due_date(due_date: date, recurrence_type: str | None) -> date | None:
    """Due date of the next cycle for a recurring plan, or None if one-off."""
    if not recurrence_type:
        return None
    step = _RECURRENCE_MONTHS.get(str(getattr(recurrence_type, "value", recurrence_type)))
    if step is None:
        return None
    return add_months(due_date, step)


def parse_due_date(value: str | date) -> date:
    """
    Normalise a due date.

    Accepts a ``date``, ``YYYY-MM`` (read as the first of that month) or
    ``YYYY-MM-DD``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if _MONTH_ONLY.match(text):
        text = f"{text}-01"
    if not _FULL_DATE.match(text):
        raise ValidationError(f"Invalid due date: {value!r}", field="due_date")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid due date: {value!r}", field="due_date") from exc
