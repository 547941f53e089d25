"""
Budget ledger settings schema.

Frozen dataclasses the YAML settings file is parsed into.  The loader
fills them; nothing else constructs them from raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class BudgetLedgerSettings:
    """Defaults applied to budget-creation payloads that omit them."""

    default_start_policy: str = "start_this_month"
    default_recurrence_type: str = "none"
    auto_fund_by_default: bool = False


@dataclass(frozen=True)
class ReportingSettings:
    """
    Dashboard settings.

    ``reporting_currency`` overrides each workspace's own currency when set.
    """

    reporting_currency: str | None = None


@dataclass(frozen=True)
class FxSettings:
    """
    Behaviour when a rate lookup fails.

    With ``fallback_to_identity`` the figure is converted at 1:1 and flagged
    approximate; without it the lookup failure propagates.
    """

    fallback_to_identity: bool = True


@dataclass(frozen=True)
class BudgetConfig:
    """The complete, validated settings tree."""

    name: str
    version: int
    database: DatabaseSettings
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    ledger: BudgetLedgerSettings = field(default_factory=BudgetLedgerSettings)
    reporting: ReportingSettings = field(default_factory=ReportingSettings)
    fx: FxSettings = field(default_factory=FxSettings)
    checksum: str = ""
