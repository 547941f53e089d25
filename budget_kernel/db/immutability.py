"""
Mapper listeners that keep ledger history and confirmed payments fixed.

Rules, checked on flush before any SQL is sent:

    LedgerEntry   no UPDATE, no per-row DELETE
    PaymentDue    no UPDATE or DELETE once status is confirmed
    Budget        budget_type never changes

A violation raises ImmutabilityViolationError and the flush fails.  Bulk
``delete(Budget)`` statements skip mapper events, so the ON DELETE CASCADE
from budgets still removes entries and payments due.

Tests that need to write a forbidden change call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    """Ledger entries are append-only and never updated."""
    raise _blocked(
        "LedgerEntry",
        target.id,
        "UPDATE",
        "Ledger entries are append-only; record an adjust or consume entry instead",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    """Ledger entries leave only through the budget cascade."""
    raise _blocked(
        "LedgerEntry",
        target.id,
        "DELETE",
        "Ledger entries cannot be deleted individually",
    )


def _check_payment_due_immutability(mapper, connection, target):
    """
    Block changes to a confirmed PaymentDue.

    The pending -> confirmed flip itself is allowed: the old status value is
    pending.  Anything that touches a row whose old status was confirmed is
    rejected.
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    elif status_history.unchanged:
        old_status = status_history.unchanged[0]
    else:
        return

    if old_status == "confirmed":
        raise _blocked(
            "PaymentDue",
            target.id,
            "UPDATE",
            "Confirmed payments cannot be modified",
        )


def _check_payment_due_delete(mapper, connection, target):
    if target.status == "confirmed":
        raise _blocked(
            "PaymentDue",
            target.id,
            "DELETE",
            "Confirmed payments cannot be deleted",
        )


def _check_budget_type_immutability(mapper, connection, target):
    """A budget's type selects its config and never changes."""
    history = get_history(target, "budget_type")
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        raise _blocked(
            "Budget",
            target.id,
            "UPDATE",
            f"budget_type is immutable (was {history.deleted[0]})",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this during application start-up, after models are imported.
    Calling it twice is harmless.
    """
    from budget_kernel.models.budget import Budget
    from budget_kernel.models.ledger import LedgerEntry
    from budget_kernel.models.payment_due import PaymentDue

    for target, event_name, fn in _listeners(Budget, LedgerEntry, PaymentDue):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _listeners(Budget, LedgerEntry, PaymentDue):
    return (
        (LedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (PaymentDue, "before_update", _check_payment_due_immutability),
        (PaymentDue, "before_delete", _check_payment_due_delete),
        (Budget, "before_update", _check_budget_type_immutability),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from budget_kernel.models.budget import Budget
    from budget_kernel.models.ledger import LedgerEntry
    from budget_kernel.models.payment_due import PaymentDue

    for target, event_name, fn in _listeners(Budget, LedgerEntry, PaymentDue):
        _safe_remove_listener(target, event_name, fn)
