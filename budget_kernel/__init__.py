"""
Budget Kernel - Funding & Reservation Ledger

A ledger-backed budgeting core with:
- Two budget strategies (pay-as-you-go caps, target-date savings plans)
- Deterministic monthly contribution planning
- Append-only fund/consume/adjust ledger with replay-derived reserves
- Idempotent monthly contribution batches
- Multi-currency aggregation with explicit rounding
"""

__version__ = "0.1.0"
