"""
FX -- exchange-rate oracle and the per-pass rate cache.

Responsibility:
    ``ExchangeRateOracle`` is the default FxOracle: it reads the latest
    effective rate for a currency pair from the ``exchange_rates`` cache.
    ``PassRates`` wraps any oracle for the duration of one aggregation pass:
    each pair is looked up at most once, and a failed lookup falls back to
    1:1 while recording the currency as approximate, whatever the oracle
    raised.

Architecture position:
    Services.  Implements budget_kernel.domain.ports.FxOracle.  Rate
    sourcing (who fills the cache, and how often) is outside this package.

Failure modes:
    - ExchangeRateNotFoundError: no cached rate for the pair.
    - DependencyError: the cache could not be read.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.ports import FxOracle
from budget_kernel.exceptions import DependencyError, ExchangeRateNotFoundError
from budget_kernel.logging_config import get_logger
from budget_kernel.models.exchange_rate import ExchangeRate

logger = get_logger("services.fx")

_ONE = Decimal("1")


class ExchangeRateOracle:
    """FxOracle over the exchange_rates table."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        source = from_currency.upper()
        target = to_currency.upper()
        if source == target:
            return _ONE

        stmt = (
            select(ExchangeRate.rate)
            .where(
                ExchangeRate.from_currency == source,
                ExchangeRate.to_currency == target,
                ExchangeRate.effective_at <= self._clock.now(),
            )
            .order_by(ExchangeRate.effective_at.desc())
            .limit(1)
        )
        try:
            rate = self.session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise DependencyError("fx", f"rate cache unavailable: {exc}") from exc
        if rate is None:
            raise ExchangeRateNotFoundError(source, target)
        return rate


class PassRates:
    """
    Rate lookups for one aggregation pass.

    Not shared across requests: create one per pass.
    """

    def __init__(self, oracle: FxOracle, target_currency: str, fallback_to_identity: bool = True):
        self._oracle = oracle
        self.target_currency = target_currency.upper()
        self._fallback = fallback_to_identity
        self._rates: dict[str, Decimal] = {}
        self._approximate: set[str] = set()

    def rate(self, from_currency: str) -> Decimal:
        source = from_currency.upper()
        if source == self.target_currency:
            return _ONE
        if source not in self._rates:
            try:
                self._rates[source] = self._oracle.get_rate(source, self.target_currency)
            except Exception as exc:
                # Any oracle failure, not only a missing rate, degrades to 1:1
                if not self._fallback:
                    if isinstance(exc, DependencyError):
                        raise
                    raise DependencyError("fx", str(exc)) from exc
                logger.warning(
                    "fx_rate_fallback_to_identity",
                    extra={
                        "from_currency": source,
                        "to_currency": self.target_currency,
                        "error_type": type(exc).__name__,
                    },
                )
                self._rates[source] = _ONE
                self._approximate.add(source)
        return self._rates[source]

    def convert(self, amount: Decimal, from_currency: str) -> Decimal:
        return amount * self.rate(from_currency)

    @property
    def is_approximate(self) -> bool:
        return bool(self._approximate)

    @property
    def approximate_currencies(self) -> tuple[str, ...]:
        return tuple(sorted(self._approximate))
