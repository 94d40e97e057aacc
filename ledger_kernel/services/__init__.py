"""Kernel services: ledger, payroll, alerting, expenses, sales, notifications."""

from ledger_kernel.services.alert_service import AlertService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.ledger_service import (
    LedgerResult,
    LedgerService,
    MigrationResult,
    RecomputationResult,
    RecordingStatus,
)
from ledger_kernel.services.notification import (
    LoggingNotifier,
    Notifier,
    SmtpNotifier,
    build_notifier,
)
from ledger_kernel.services.payroll_service import (
    PaymentOutcome,
    PayrollRunSummary,
    PayrollService,
)
from ledger_kernel.services.sales_service import SalesService

__all__ = [
    "AlertService",
    "ExpenseService",
    "LedgerResult",
    "LedgerService",
    "LoggingNotifier",
    "MigrationResult",
    "Notifier",
    "PaymentOutcome",
    "PayrollRunSummary",
    "PayrollService",
    "RecomputationResult",
    "RecordingStatus",
    "SalesService",
    "SmtpNotifier",
    "build_notifier",
]
