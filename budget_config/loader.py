"""
Settings loader (``budget_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses in
``budget_config.schema``.  The single public entry point for runtime
settings is ``budget_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` with a message naming the key; no
  silent defaults for required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash for settings
  identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from budget_config.schema import (
    BudgetConfig,
    BudgetLedgerSettings,
    DatabaseSettings,
    FxSettings,
    LoggingSettings,
    ReportingSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_START_POLICIES = frozenset({"start_this_month", "start_next_month"})
_RECURRENCES = frozenset({"none", "monthly", "quarterly", "yearly"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping, got {type(value).__name__}")
    return value


def _bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ValueError("database.url is required")
    return DatabaseSettings(
        url=url,
        echo=_bool(data, "echo", False),
        pool_size=_positive_int(data, "pool_size", 20),
        max_overflow=_positive_int(data, "max_overflow", 10),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingSettings(level=level)


def parse_ledger(data: dict[str, Any]) -> BudgetLedgerSettings:
    start_policy = data.get("default_start_policy", "start_this_month")
    if start_policy not in _START_POLICIES:
        raise ValueError(f"ledger.default_start_policy invalid: {start_policy!r}")
    recurrence = data.get("default_recurrence_type", "none")
    if recurrence not in _RECURRENCES:
        raise ValueError(f"ledger.default_recurrence_type invalid: {recurrence!r}")
    return BudgetLedgerSettings(
        default_start_policy=start_policy,
        default_recurrence_type=recurrence,
        auto_fund_by_default=_bool(data, "auto_fund_by_default", False),
    )


def parse_reporting(data: dict[str, Any]) -> ReportingSettings:
    currency = data.get("reporting_currency")
    if currency is not None:
        if not isinstance(currency, str) or len(currency.strip()) != 3:
            raise ValueError(f"reporting.reporting_currency invalid: {currency!r}")
        currency = currency.strip().upper()
    return ReportingSettings(reporting_currency=currency)


def parse_fx(data: dict[str, Any]) -> FxSettings:
    return FxSettings(fallback_to_identity=_bool(data, "fallback_to_identity", True))


def parse_config(data: dict[str, Any], database_url: str | None = None) -> BudgetConfig:
    """
    Parse a full settings dict.

    ``database_url`` replaces ``database.url`` when given.
    """
    database = dict(_section(data, "database"))
    if database_url:
        database["url"] = database_url
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"'version' must be an integer, got {version!r}")
    return BudgetConfig(
        name=str(data.get("name", "default")),
        version=version,
        database=parse_database(database),
        logging=parse_logging(_section(data, "logging")),
        ledger=parse_ledger(_section(data, "ledger")),
        reporting=parse_reporting(_section(data, "reporting")),
        fx=parse_fx(_section(data, "fx")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
