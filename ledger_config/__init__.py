"""
ledger_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  Services receive the parsed dataclasses by
    constructor injection and never read YAML files or environment
    variables themselves.

Resolution order (later wins):
    1. ``ledger_config/defaults.yaml`` shipped with the package.
    2. The override file passed as ``config_path``, or the file named by
       ``RESTAURANT_LEDGER_CONFIG``.
    3. ``DATABASE_URL`` for the database URL.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema violations in YAML.
"""

from __future__ import annotations

import os
from pathlib import Path

from ledger_config.loader import load_settings
from ledger_config.schema import (
    AppSettings,
    DatabaseSettings,
    LedgerSettings,
    NotificationSettings,
    PayrollSettings,
    ScheduleDefinition,
    SchedulerSettings,
    SmtpSettings,
)
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "RESTAURANT_LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_settings(config_path: Path | str | None = None) -> AppSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_path: Optional override YAML.  Falls back to the file named
            by ``RESTAURANT_LEDGER_CONFIG`` when not given.

    Returns:
        Frozen ``AppSettings``.
    """
    override = config_path or os.environ.get(CONFIG_ENV_VAR)
    override_path = Path(override) if override else None

    settings = load_settings(
        _DEFAULTS_PATH,
        override_path=override_path,
        database_url=os.environ.get(DATABASE_URL_ENV_VAR),
    )

    _logger.info(
        "ledger_config_loaded",
        extra={
            "override_path": str(override_path) if override_path else None,
            "notification_backend": settings.notifications.backend,
            "schedule_count": len(settings.scheduler.schedules),
            "default_low_balance_threshold": settings.ledger.default_low_balance_threshold,
        },
    )
    return settings


__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "NotificationSettings",
    "PayrollSettings",
    "ScheduleDefinition",
    "SchedulerSettings",
    "SmtpSettings",
    "get_active_settings",
]
