"""Pure domain values: clocks, ledger references and the payroll calendar."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.payroll_calendar import (
    PaymentFrequency,
    PayPeriod,
    due_period,
)
from ledger_kernel.domain.references import LedgerReference, ReferenceKind

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "LedgerReference",
    "ReferenceKind",
    "PaymentFrequency",
    "PayPeriod",
    "due_period",
]
