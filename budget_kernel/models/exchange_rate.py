"""
Exchange-rate cache read by the default FX oracle.

Rows come from an external rate-sourcing job.  The ledger only asks for the
latest rate per (from, to) pair that is already effective.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base
from budget_kernel.db.types import Rate


class ExchangeRate(Base):
    """``amount_in_from * rate == amount_in_to``.  Directional; no inverses."""

    __tablename__ = "exchange_rates"
    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_exchange_rate_positive"),
        Index("idx_rate_pair_effective", "from_currency", "to_currency", "effective_at"),
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Rate] = mapped_column(nullable=False)
    effective_at: Mapped[datetime] = mapped_column(nullable=False)
    # "manual", "ECB", ...
    source: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<ExchangeRate {self.from_currency}->{self.to_currency} {self.rate}>"
