"""
budget_config -- single public entrypoint for budget ledger settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads the settings file or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``budget_kernel`` and below
    ``budget_services``.  The kernel MUST NEVER import from
    ``budget_config``; budget_services translates settings into kernel
    arguments.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- a value fails validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from budget_config.loader import compute_checksum, load_yaml_file, parse_config
from budget_config.schema import (
    BudgetConfig,
    BudgetLedgerSettings,
    DatabaseSettings,
    FxSettings,
    LoggingSettings,
    ReportingSettings,
)

_logger = logging.getLogger("budget_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> BudgetConfig:
    """The ONLY public settings entrypoint.

    Args:
        path: Settings file.  Defaults to budget_config/sets/default.yaml.
        environ: Environment mapping; defaults to ``os.environ``.  A
            ``DATABASE_URL`` entry overrides ``database.url``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If a value fails validation.
    """
    env = os.environ if environ is None else environ
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_FILE
    data = load_yaml_file(config_path)
    config = parse_config(data, database_url=env.get(DATABASE_URL_ENV))

    _logger.info(
        "budget_config_loaded",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "compute_checksum",
    "BudgetConfig",
    "DatabaseSettings",
    "LoggingSettings",
    "BudgetLedgerSettings",
    "ReportingSettings",
    "FxSettings",
]
