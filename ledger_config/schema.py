"""
Runtime settings schema.

Typed, frozen views of the ledger's YAML configuration.  The loader parses
YAML into these types; services receive the slice they need by constructor
injection and never read files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Balance defaults and expense classification."""

    default_low_balance_threshold: Decimal = Decimal("100000.00")
    payroll_expense_category: str = "Nómina"


# ---------------------------------------------------------------------------
# Payroll
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrollSettings:
    """How payroll expenses are booked."""

    expense_payment_method: str = "Transferencia"
    notify_employees: bool = True


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SmtpSettings:
    host: str = "localhost"
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    sender: str = "no-reply@restaurante.com"


@dataclass(frozen=True)
class NotificationSettings:
    """Notification collaborator selection and alert recipient."""

    backend: str = "logging"  # "logging" or "smtp"
    admin_email: str = "admin@restaurante.com"
    smtp: SmtpSettings = field(default_factory=SmtpSettings)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleDefinition:
    """A named job bound to a cron expression."""

    name: str
    job: str  # "payroll_cycle" or "pending_retry"
    cron: str
    enabled: bool = True


@dataclass(frozen=True)
class SchedulerSettings:
    timezone: str | None = None
    poll_interval_seconds: float = 30.0
    schedules: tuple[ScheduleDefinition, ...] = ()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///restaurant_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppSettings:
    """Everything the ledger needs at runtime, parsed once at startup."""

    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    payroll: PayrollSettings = field(default_factory=PayrollSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
