"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``ledger_config.schema``
dataclass instances.  The single public entry point for runtime settings is
``ledger_config.get_active_settings()``; this module is its implementation
and is used directly only by tests.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.
* Every parsed object is a frozen dataclass from ``schema.py``.
* Monetary values are parsed as ``Decimal`` from their string form, never
  through float.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in a schedule entry  -> ``KeyError`` propagates.
* Unknown job name or notification backend  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

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

KNOWN_JOBS = frozenset({"payroll_cycle", "pending_retry"})
KNOWN_BACKENDS = frozenset({"logging", "smtp"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Lists are replaced, not concatenated.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}") from exc


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    defaults = LedgerSettings()
    threshold = parse_decimal(
        data.get("default_low_balance_threshold", defaults.default_low_balance_threshold),
        "ledger.default_low_balance_threshold",
    )
    if threshold < 0:
        raise ValueError(
            f"ledger.default_low_balance_threshold must be >= 0, got {threshold}"
        )
    return LedgerSettings(
        default_low_balance_threshold=threshold,
        payroll_expense_category=data.get(
            "payroll_expense_category", defaults.payroll_expense_category
        ),
    )


def parse_payroll(data: dict[str, Any]) -> PayrollSettings:
    defaults = PayrollSettings()
    return PayrollSettings(
        expense_payment_method=data.get(
            "expense_payment_method", defaults.expense_payment_method
        ),
        notify_employees=bool(data.get("notify_employees", defaults.notify_employees)),
    )


def parse_notifications(data: dict[str, Any]) -> NotificationSettings:
    defaults = NotificationSettings()
    backend = data.get("backend", defaults.backend)
    if backend not in KNOWN_BACKENDS:
        raise ValueError(
            f"notifications.backend must be one of {sorted(KNOWN_BACKENDS)}, "
            f"got {backend!r}"
        )

    smtp_data = data.get("smtp") or {}
    smtp_defaults = SmtpSettings()
    smtp = SmtpSettings(
        host=smtp_data.get("host", smtp_defaults.host),
        port=int(smtp_data.get("port", smtp_defaults.port)),
        username=smtp_data.get("username"),
        password=smtp_data.get("password"),
        use_tls=bool(smtp_data.get("use_tls", smtp_defaults.use_tls)),
        sender=smtp_data.get("sender", smtp_defaults.sender),
    )

    return NotificationSettings(
        backend=backend,
        admin_email=data.get("admin_email", defaults.admin_email),
        smtp=smtp,
    )


def parse_schedule(data: dict[str, Any]) -> ScheduleDefinition:
    """
    Parse a ``ScheduleDefinition`` from a dict.

    Raises:
        KeyError: if ``name`` or ``cron`` is missing.
        ValueError: if the job is unknown.
    """
    job = data.get("job", data["name"])
    if job not in KNOWN_JOBS:
        raise ValueError(
            f"schedule {data['name']!r}: unknown job {job!r} "
            f"(expected one of {sorted(KNOWN_JOBS)})"
        )
    return ScheduleDefinition(
        name=data["name"],
        job=job,
        cron=data["cron"],
        enabled=bool(data.get("enabled", True)),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerSettings:
    defaults = SchedulerSettings()
    return SchedulerSettings(
        timezone=data.get("timezone"),
        poll_interval_seconds=float(
            data.get("poll_interval_seconds", defaults.poll_interval_seconds)
        ),
        schedules=tuple(parse_schedule(s) for s in data.get("schedules", [])),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_settings(data: dict[str, Any]) -> AppSettings:
    """Parse a full settings document into ``AppSettings``."""
    return AppSettings(
        ledger=parse_ledger(data.get("ledger") or {}),
        payroll=parse_payroll(data.get("payroll") or {}),
        notifications=parse_notifications(data.get("notifications") or {}),
        scheduler=parse_scheduler(data.get("scheduler") or {}),
        database=parse_database(data.get("database") or {}),
    )


def load_settings(
    defaults_path: Path,
    override_path: Path | None = None,
    database_url: str | None = None,
) -> AppSettings:
    """Load packaged defaults, apply an optional override file and URL."""
    data = load_yaml_file(defaults_path)
    if override_path is not None:
        data = merge_dicts(data, load_yaml_file(override_path))
    if database_url:
        data = merge_dicts(data, {"database": {"url": database_url}})
    return parse_settings(data)
