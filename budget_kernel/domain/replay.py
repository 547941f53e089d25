"""
Replay -- Derive reserved balances from ledger entries.

Responsibility:
    Reserved money is never stored.  These functions fold a sequence of
    (entry_type, amount) pairs into a balance: fund and adjust add, consume
    subtracts.  Results may be negative (a plan paid before it was fully
    funded) and are never clamped.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError on an unknown entry type or a non-positive amount.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

_SIGNS: dict[str, int] = {
    "fund": 1,
    "adjust": 1,
    "consume": -1,
}


def signed_amount(entry_type: Any, amount: Decimal) -> Decimal:
    """Effect of one entry on reserved."""
    key = getattr(entry_type, "value", entry_type)
    sign = _SIGNS.get(key)
    if sign is None:
        raise ValueError(f"Unknown ledger entry type: {entry_type!r}")
    if amount <= 0:
        raise ValueError(f"Ledger amounts are stored positive, got {amount}")
    return amount if sign > 0 else -amount


def replay_reserved(entries: Iterable[tuple[Any, Decimal]]) -> Decimal:
    """Σfund + Σadjust − Σconsume over ``entries``."""
    total = Decimal("0")
    for entry_type, amount in entries:
        total += signed_amount(entry_type, amount)
    return total


def replay_by_budget(
    rows: Iterable[tuple[UUID, Any, Decimal]],
) -> dict[UUID, Decimal]:
    """Reserved per budget from one pass over (budget_id, entry_type, amount)."""
    totals: dict[UUID, Decimal] = {}
    for budget_id, entry_type, amount in rows:
        totals[budget_id] = totals.get(budget_id, Decimal("0")) + signed_amount(
            entry_type, amount
        )
    return totals
