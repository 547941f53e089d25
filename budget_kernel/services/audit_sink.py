"""
Audit sinks -- fire-and-forget records of mutating actions.

Responsibility:
    The default AuditSink writes one structured log line per action.  Any
    sink, default or injected, is called through ``record_safely`` so that
    a failing sink never fails the operation that triggered it.

Architecture position:
    Kernel > Services.  Implements domain/ports.py:AuditSink.
"""

from typing import Any

from budget_kernel.domain.ports import AuditSink
from budget_kernel.logging_config import get_logger

logger = get_logger("services.audit")


class LoggingAuditSink:
    """Emit each audited action as an ``audit_record`` log line."""

    def record(self, action: str, payload: dict[str, Any]) -> None:
        logger.info(
            "audit_record",
            extra={"audit_action": action, **{f"audit_{k}": v for k, v in payload.items()}},
        )


def record_safely(sink: AuditSink | None, action: str, payload: dict[str, Any]) -> None:
    """Call ``sink.record``; log and drop any failure."""
    if sink is None:
        return
    try:
        sink.record(action, payload)
    except Exception:
        # Sinks are fire-and-forget; the primary operation already succeeded
        logger.warning(
            "audit_sink_failed",
            extra={"audit_action": action},
            exc_info=True,
        )
